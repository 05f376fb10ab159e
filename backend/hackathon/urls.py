from django.urls import path

from .views import (
    ApiFixRegistrationNumbersView, ApiHackathonRegisterView, ApiMyRegistrationsView, ApiRegisterView, HealthView,
)

urlpatterns = [
    path('', HealthView.as_view(), name='health'),
    path('api/auth/register', ApiRegisterView.as_view(), name='api_register'),
    path('api/auth/fix-registration-numbers', ApiFixRegistrationNumbersView.as_view(), name='api_fix_registration_numbers'),

    # Hackathon registration
    path('api/hackathons/<int:hackathon_id>/register', ApiHackathonRegisterView.as_view(), name='api_hackathon_register'),
    path('api/hackathons/registrations/me', ApiMyRegistrationsView.as_view(), name='api_my_registrations'),
]
