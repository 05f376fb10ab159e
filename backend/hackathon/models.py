from django.db import models
from django.utils import timezone


class AppUser(models.Model):
    ROLE_USER = 'user'
    ROLE_JUDGE = 'judge'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_USER, 'User / Organizer'),
        (ROLE_JUDGE, 'Judge'),
        (ROLE_ADMIN, 'Admin'),
    ]

    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254)
    phone = models.CharField(max_length=32, null=True, blank=True)

    password_salt_b64 = models.CharField(max_length=64)
    password_hash_b64 = models.CharField(max_length=128)
    password_iterations = models.PositiveIntegerField()

    # USR + epoch millis + 4 random digits
    registration_number = models.CharField(max_length=32, null=True, blank=True)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_USER)
    approved = models.BooleanField(default=False)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['email'], name='uniq_user_email'),
            models.UniqueConstraint(fields=['registration_number'], name='uniq_user_registration_number'),
        ]

    def __str__(self) -> str:
        return f'{self.name} <{self.email}>'


class AuthSession(models.Model):
    user = models.ForeignKey(AppUser, on_delete=models.CASCADE, related_name='sessions')
    token_hash = models.CharField(max_length=64, unique=True)

    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    revoked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['user', 'expires_at'], name='auth_session_user_expires_idx'),
        ]

    def is_valid(self) -> bool:
        if self.revoked_at is not None:
            return False
        return self.expires_at > timezone.now()


class Hackathon(models.Model):
    STATUS_DRAFT = 'draft'
    STATUS_OPEN = 'open'
    STATUS_ACTIVE = 'active'
    STATUS_CLOSED = 'closed'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_OPEN, 'Open'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_CLOSED, 'Closed'),
    ]
    ACCEPTING_STATUSES = {STATUS_OPEN, STATUS_ACTIVE}

    LOCATION_CHOICES = [
        ('online', 'Online'),
        ('onsite', 'Onsite'),
    ]

    name = models.CharField(max_length=255)
    description = models.TextField()
    theme = models.CharField(max_length=255, blank=True, default='')
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    registration_deadline = models.DateTimeField()
    location_type = models.CharField(max_length=10, choices=LOCATION_CHOICES, default='online')
    venue = models.CharField(max_length=255, blank=True, default='')
    max_team_size = models.PositiveIntegerField()
    max_teams = models.PositiveIntegerField()
    organizer = models.ForeignKey(
        AppUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='organized_hackathons'
    )
    organization = models.CharField(max_length=255, blank=True, default='')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_DRAFT)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['start_date']

    def __str__(self) -> str:
        return self.name

    def is_accepting_registrations(self, now=None) -> bool:
        now = now or timezone.now()
        return self.status in self.ACCEPTING_STATUSES and now <= self.registration_deadline


class HackathonRegistration(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    hackathon = models.ForeignKey(Hackathon, on_delete=models.CASCADE, related_name='registrations')
    user = models.ForeignKey(AppUser, on_delete=models.CASCADE, related_name='hackathon_registrations')

    # HACK + epoch millis + 4 random digits
    registration_number = models.CharField(max_length=32, null=True, blank=True)
    # The user's USR number at registration time
    participant_number = models.CharField(max_length=32, null=True, blank=True)

    team_size = models.PositiveIntegerField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    registered_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-registered_at']
        constraints = [
            models.UniqueConstraint(fields=['registration_number'], name='uniq_registration_number'),
            models.UniqueConstraint(fields=['hackathon', 'user'], name='uniq_registration_per_hackathon_user'),
        ]

    def __str__(self) -> str:
        return f'{self.registration_number or "-"} ({self.hackathon_id}:{self.user_id})'


class Teammate(models.Model):
    registration = models.ForeignKey(HackathonRegistration, on_delete=models.CASCADE, related_name='teammates')
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254, null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['id']

    def __str__(self) -> str:
        return self.name
