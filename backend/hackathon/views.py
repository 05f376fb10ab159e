import json
import logging
import re

from django.db import transaction
from django.http import HttpRequest, JsonResponse
from drf_yasg import openapi
from drf_yasg.utils import swagger_auto_schema
from rest_framework.response import Response
from rest_framework.views import APIView

from .auth import issue_session, resolve_admin_session, resolve_session
from .exceptions import ExhaustedAttempts, RegistrationError, StorageUnavailable
from .models import AppUser, Hackathon, HackathonRegistration
from .registration import backfill_registration_numbers, create_account, register_team

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
SELF_SERVICE_ROLES = {AppUser.ROLE_USER, AppUser.ROLE_JUDGE}

NUMBER_EXHAUSTED_MESSAGE = 'Failed to generate unique registration number. Please try again.'
STORAGE_UNAVAILABLE_MESSAGE = 'Service temporarily unavailable. Please try again.'


def _json_body(request: HttpRequest) -> dict:
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body.decode('utf-8'))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _registration_payload(registration: HackathonRegistration) -> dict:
    return {
        'registration_id': registration.id,
        'registration_number': registration.registration_number,
        'participant_number': registration.participant_number,
        'hackathon_id': registration.hackathon_id,
        'team_size': registration.team_size,
        'teammates': [{'name': t.name, 'email': t.email} for t in registration.teammates.all()],
        'status': registration.status,
        'registered_at': registration.registered_at.isoformat(),
    }


def _parse_teammates(raw) -> list[dict] | None:
    if raw is None:
        return []
    if not isinstance(raw, list):
        return None

    teammates = []
    for item in raw:
        if not isinstance(item, dict):
            return None
        name = (item.get('name') or '').strip() if isinstance(item.get('name'), str) else ''
        email = item.get('email')
        email = email.strip() if isinstance(email, str) else ''
        if not name:
            return None
        if email and not _EMAIL_RE.match(email):
            return None
        teammates.append({'name': name, 'email': email or None})
    return teammates


class HealthView(APIView):
    """Health check endpoint"""

    @swagger_auto_schema(
        tags=['3. System'],
        operation_description="Health check endpoint",
        responses={200: openapi.Response('Success', openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={'status': openapi.Schema(type=openapi.TYPE_STRING)}
        ))}
    )
    def get(self, request):
        return Response({'status': 'ok'})


class ApiRegisterView(APIView):
    """Account registration endpoint"""

    @swagger_auto_schema(
        tags=['1. Accounts'],
        operation_description="Create an account. Every account receives a unique USR registration number.",
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            required=['name', 'email', 'password'],
            properties={
                'name': openapi.Schema(type=openapi.TYPE_STRING, description='Full name'),
                'email': openapi.Schema(type=openapi.TYPE_STRING, description='Email address'),
                'password': openapi.Schema(type=openapi.TYPE_STRING, description='At least 6 characters'),
                'role': openapi.Schema(type=openapi.TYPE_STRING, enum=sorted(SELF_SERVICE_ROLES)),
                'phone': openapi.Schema(type=openapi.TYPE_STRING, description='Phone number'),
            }
        ),
        responses={
            201: openapi.Response('Created', openapi.Schema(
                type=openapi.TYPE_OBJECT,
                properties={
                    'id': openapi.Schema(type=openapi.TYPE_INTEGER),
                    'name': openapi.Schema(type=openapi.TYPE_STRING),
                    'email': openapi.Schema(type=openapi.TYPE_STRING),
                    'role': openapi.Schema(type=openapi.TYPE_STRING),
                    'phone': openapi.Schema(type=openapi.TYPE_STRING),
                    'registration_number': openapi.Schema(type=openapi.TYPE_STRING),
                    'token': openapi.Schema(type=openapi.TYPE_STRING),
                    'expires_at': openapi.Schema(type=openapi.TYPE_STRING),
                }
            )),
            400: 'Bad Request',
            500: 'Registration number allocation failed',
            503: 'Storage unavailable',
        }
    )
    def post(self, request):
        payload = _json_body(request)
        name = str(payload.get('name') or '').strip()
        email = str(payload.get('email') or '').strip().lower()
        password = str(payload.get('password') or '')
        role = str(payload.get('role') or AppUser.ROLE_USER).strip().lower()
        phone = str(payload.get('phone') or '').strip() or None

        if not name or not email or not password:
            return JsonResponse({'error': 'Please provide name, email, and password'}, status=400)
        if not _EMAIL_RE.match(email):
            return JsonResponse({'error': 'Please provide a valid email address'}, status=400)
        if len(password) < 6:
            return JsonResponse({'error': 'Password must be at least 6 characters long'}, status=400)
        if role not in SELF_SERVICE_ROLES:
            return JsonResponse({'error': 'Invalid role.'}, status=400)

        try:
            with transaction.atomic():
                user = create_account(name=name, email=email, password=password, role=role, phone=phone)
                raw_token, session = issue_session(user)
        except RegistrationError as exc:
            return JsonResponse({'error': exc.message}, status=exc.status_code)
        except ExhaustedAttempts:
            logger.exception(f'Registration number allocation failed for {email}')
            return JsonResponse({'error': NUMBER_EXHAUSTED_MESSAGE}, status=500)
        except StorageUnavailable:
            logger.exception(f'Storage unavailable while registering {email}')
            return JsonResponse({'error': STORAGE_UNAVAILABLE_MESSAGE}, status=503)

        return JsonResponse(
            {
                'id': user.id,
                'name': user.name,
                'email': user.email,
                'role': user.role,
                'phone': user.phone,
                'registration_number': user.registration_number,
                'token': raw_token,
                'expires_at': session.expires_at.isoformat(),
            },
            status=201,
        )


class ApiHackathonRegisterView(APIView):
    """Register the authenticated user's team for a hackathon"""

    @swagger_auto_schema(
        tags=['2. Hackathon registration'],
        operation_description="Register a team for a hackathon. The registration receives a unique HACK number.",
        manual_parameters=[
            openapi.Parameter('Authorization', openapi.IN_HEADER, description="Bearer token", type=openapi.TYPE_STRING, required=True)
        ],
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            required=['team_size'],
            properties={
                'team_size': openapi.Schema(type=openapi.TYPE_INTEGER, description='Team size including the registrant'),
                'teammates': openapi.Schema(
                    type=openapi.TYPE_ARRAY,
                    items=openapi.Schema(
                        type=openapi.TYPE_OBJECT,
                        required=['name'],
                        properties={
                            'name': openapi.Schema(type=openapi.TYPE_STRING),
                            'email': openapi.Schema(type=openapi.TYPE_STRING),
                        }
                    ),
                ),
            }
        ),
        responses={
            201: 'Created',
            400: 'Bad Request / already registered / registration closed',
            401: 'Unauthorized',
            404: 'Hackathon not found',
            409: 'Hackathon is full',
            500: 'Registration number allocation failed',
        }
    )
    def post(self, request, hackathon_id: int):
        session = resolve_session(request)
        if session is None:
            return JsonResponse({'error': 'Unauthorized'}, status=401)

        hackathon = Hackathon.objects.filter(id=hackathon_id).first()
        if hackathon is None:
            return JsonResponse({'error': 'Hackathon not found'}, status=404)

        payload = _json_body(request)
        team_size = payload.get('team_size')
        if isinstance(team_size, bool) or not isinstance(team_size, int) or team_size < 1:
            return JsonResponse({'error': 'team_size must be a positive integer.'}, status=400)

        teammates = _parse_teammates(payload.get('teammates'))
        if teammates is None:
            return JsonResponse({'error': 'Each teammate needs a name and an optional valid email.'}, status=400)

        user = session.user
        try:
            registration = register_team(user=user, hackathon=hackathon, team_size=team_size, teammates=teammates)
        except RegistrationError as exc:
            return JsonResponse({'error': exc.message}, status=exc.status_code)
        except ExhaustedAttempts:
            logger.exception(f'Registration number allocation failed for user {user.id} / hackathon {hackathon.id}')
            return JsonResponse({'error': NUMBER_EXHAUSTED_MESSAGE}, status=500)
        except StorageUnavailable:
            logger.exception(f'Storage unavailable while registering user {user.id} / hackathon {hackathon.id}')
            return JsonResponse({'error': STORAGE_UNAVAILABLE_MESSAGE}, status=503)

        return JsonResponse(_registration_payload(registration), status=201)


class ApiMyRegistrationsView(APIView):
    """List the authenticated user's hackathon registrations"""

    @swagger_auto_schema(
        tags=['2. Hackathon registration'],
        operation_description="List the current user's hackathon registrations",
        manual_parameters=[
            openapi.Parameter('Authorization', openapi.IN_HEADER, description="Bearer token", type=openapi.TYPE_STRING, required=True)
        ],
        responses={200: 'Success', 401: 'Unauthorized'}
    )
    def get(self, request):
        session = resolve_session(request)
        if session is None:
            return JsonResponse({'error': 'Unauthorized'}, status=401)

        registrations = (
            HackathonRegistration.objects.filter(user=session.user)
            .select_related('hackathon')
            .prefetch_related('teammates')
        )
        return JsonResponse({
            'registration_number': session.user.registration_number,
            'registrations': [
                dict(_registration_payload(r), hackathon_name=r.hackathon.name) for r in registrations
            ],
        })


class ApiFixRegistrationNumbersView(APIView):
    """Backfill missing or malformed registration numbers (admin only)"""

    @swagger_auto_schema(
        tags=['4. Maintenance'],
        operation_description="Assign fresh registration numbers to users and team registrations that lack a valid one",
        manual_parameters=[
            openapi.Parameter('Authorization', openapi.IN_HEADER, description="Admin bearer token", type=openapi.TYPE_STRING, required=True)
        ],
        request_body=openapi.Schema(
            type=openapi.TYPE_OBJECT,
            properties={
                'dry_run': openapi.Schema(type=openapi.TYPE_BOOLEAN, description='Only count, do not write'),
            }
        ),
        responses={200: 'Success', 401: 'Admin access required'}
    )
    def post(self, request):
        if resolve_admin_session(request) is None:
            return JsonResponse({'error': 'Admin access required.'}, status=401)

        payload = _json_body(request)
        dry_run = bool(payload.get('dry_run', False))

        reports = backfill_registration_numbers(dry_run=dry_run)
        return JsonResponse({
            'message': 'Registration numbers fix completed' if not dry_run else 'Dry run: no changes saved',
            'dry_run': dry_run,
            'users': reports['users'].as_dict(),
            'registrations': reports['registrations'].as_dict(),
        })
