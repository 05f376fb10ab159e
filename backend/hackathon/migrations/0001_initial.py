import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='AppUser',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('email', models.EmailField(max_length=254)),
                ('phone', models.CharField(blank=True, max_length=32, null=True)),
                ('password_salt_b64', models.CharField(max_length=64)),
                ('password_hash_b64', models.CharField(max_length=128)),
                ('password_iterations', models.PositiveIntegerField()),
                ('registration_number', models.CharField(blank=True, max_length=32, null=True)),
                ('role', models.CharField(choices=[('user', 'User / Organizer'), ('judge', 'Judge'), ('admin', 'Admin')], default='user', max_length=10)),
                ('approved', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(fields=('email',), name='uniq_user_email'),
                    models.UniqueConstraint(fields=('registration_number',), name='uniq_user_registration_number'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuthSession',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('token_hash', models.CharField(max_length=64, unique=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('expires_at', models.DateTimeField()),
                ('revoked_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='sessions', to='hackathon.appuser')),
            ],
            options={
                'indexes': [models.Index(fields=['user', 'expires_at'], name='auth_session_user_expires_idx')],
            },
        ),
        migrations.CreateModel(
            name='Hackathon',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField()),
                ('theme', models.CharField(blank=True, default='', max_length=255)),
                ('start_date', models.DateTimeField()),
                ('end_date', models.DateTimeField()),
                ('registration_deadline', models.DateTimeField()),
                ('location_type', models.CharField(choices=[('online', 'Online'), ('onsite', 'Onsite')], default='online', max_length=10)),
                ('venue', models.CharField(blank=True, default='', max_length=255)),
                ('max_team_size', models.PositiveIntegerField()),
                ('max_teams', models.PositiveIntegerField()),
                ('organization', models.CharField(blank=True, default='', max_length=255)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('open', 'Open'), ('active', 'Active'), ('closed', 'Closed')], default='draft', max_length=10)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('organizer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='organized_hackathons', to='hackathon.appuser')),
            ],
            options={
                'ordering': ['start_date'],
            },
        ),
        migrations.CreateModel(
            name='HackathonRegistration',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('registration_number', models.CharField(blank=True, max_length=32, null=True)),
                ('participant_number', models.CharField(blank=True, max_length=32, null=True)),
                ('team_size', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected')], default='pending', max_length=10)),
                ('registered_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('hackathon', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='registrations', to='hackathon.hackathon')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='hackathon_registrations', to='hackathon.appuser')),
            ],
            options={
                'ordering': ['-registered_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('registration_number',), name='uniq_registration_number'),
                    models.UniqueConstraint(fields=('hackathon', 'user'), name='uniq_registration_per_hackathon_user'),
                    # Registrations used to carry the user's number here, one row per user.
                    models.UniqueConstraint(fields=('participant_number',), name='uniq_registration_participant_number'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Teammate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('registration', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='teammates', to='hackathon.hackathonregistration')),
            ],
            options={
                'ordering': ['id'],
            },
        ),
    ]
