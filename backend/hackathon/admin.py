from django.contrib import admin, messages

from .models import AppUser, AuthSession, Hackathon, HackathonRegistration, Teammate
from .registration import backfill_registration_numbers


@admin.action(description='Assign missing registration numbers')
def assign_missing_registration_numbers(modeladmin, request, queryset):
    reports = backfill_registration_numbers()
    for label, report in reports.items():
        level = messages.WARNING if report.errors else messages.SUCCESS
        modeladmin.message_user(
            request,
            f'{label}: {report.fixed} of {report.total} fixed, {report.errors} errors',
            level=level,
        )


@admin.register(AppUser)
class AppUserAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'registration_number', 'role', 'approved', 'is_active', 'created_at']
    search_fields = ['name', 'email', 'phone', 'registration_number']
    list_filter = ['role', 'approved', 'is_active']
    readonly_fields = ['registration_number', 'password_salt_b64', 'password_hash_b64', 'password_iterations', 'created_at']
    actions = [assign_missing_registration_numbers]


@admin.register(AuthSession)
class AuthSessionAdmin(admin.ModelAdmin):
    list_display = ['user', 'created_at', 'expires_at', 'revoked_at']
    list_filter = ['created_at', 'expires_at']
    search_fields = ['user__email', 'user__name']
    readonly_fields = ['created_at']


@admin.register(Hackathon)
class HackathonAdmin(admin.ModelAdmin):
    list_display = ['name', 'status', 'start_date', 'registration_deadline', 'max_team_size', 'max_teams']
    list_filter = ['status', 'location_type']
    search_fields = ['name', 'organization']


class TeammateInline(admin.TabularInline):
    model = Teammate
    extra = 0


@admin.register(HackathonRegistration)
class HackathonRegistrationAdmin(admin.ModelAdmin):
    list_display = ['registration_number', 'hackathon', 'user', 'participant_number', 'team_size', 'status', 'registered_at']
    list_filter = ['status', 'hackathon']
    search_fields = ['registration_number', 'participant_number', 'user__email']
    readonly_fields = ['registration_number', 'participant_number', 'registered_at']
    inlines = [TeammateInline]
    actions = [assign_missing_registration_numbers]
