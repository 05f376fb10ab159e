# A user registering for a second hackathon collided with their own first
# registration on participant_number. Uniqueness per hackathon is covered by
# uniq_registration_per_hackathon_user.

from django.db import migrations


class Migration(migrations.Migration):

    dependencies = [
        ('hackathon', '0001_initial'),
    ]

    operations = [
        migrations.RemoveConstraint(
            model_name='hackathonregistration',
            name='uniq_registration_participant_number',
        ),
    ]
