import json
from datetime import timedelta
from io import StringIO
from unittest import mock

import requests
from django.core.management import CommandError, call_command
from django.db import IntegrityError, transaction
from django.test import Client, SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from .admin import assign_missing_registration_numbers
from .auth import hash_password, hash_session_token, issue_session, verify_password
from .exceptions import (
    AlreadyRegistered,
    CapacityReached,
    DuplicateEmail,
    ExhaustedAttempts,
    IdentifierTaken,
    InvalidTeam,
    RegistrationClosed,
    StorageUnavailable,
)
from .identifiers import (
    COLLIDED,
    UNIQUE,
    IdentifierAllocator,
    Namespace,
    format_identifier,
    is_valid_identifier,
)
from .models import AppUser, AuthSession, Hackathon, HackathonRegistration, Teammate
from .registration import (
    backfill_registration_numbers,
    create_account,
    ensure_registration_number,
    register_team,
)
from .storage import unique_constraints, violated_constraint


COMPOUND_VIOLATION = (
    'UNIQUE constraint failed: hackathon_hackathonregistration.hackathon_id, '
    'hackathon_hackathonregistration.user_id'
)
LEGACY_VIOLATION = 'UNIQUE constraint failed: hackathon_hackathonregistration.participant_number'


class CountingRng:
    """randrange stub returning 0, 1, 2, ... so every candidate differs"""

    def __init__(self):
        self.calls = 0

    def randrange(self, stop):
        value = self.calls % stop
        self.calls += 1
        return value


def make_allocator(namespace=Namespace.USER, *, taken_first=0, max_attempts=10, sleeps=None):
    checked = []

    def exists(candidate):
        checked.append(candidate)
        return len(checked) <= taken_first

    allocator = IdentifierAllocator(
        namespace,
        exists=exists,
        max_attempts=max_attempts,
        clock=lambda: 1704067200.5,
        rng=CountingRng(),
        sleep=(sleeps.append if sleeps is not None else (lambda seconds: None)),
    )
    return allocator, checked


def make_user(email='legacy@example.com', registration_number=None, role=AppUser.ROLE_USER):
    """Insert an account row directly, the way pre-allocator records look"""
    salt, hash_val, iterations = hash_password('testpass123', iterations=1000)
    return AppUser.objects.create(
        name=email.split('@')[0],
        email=email,
        password_salt_b64=salt,
        password_hash_b64=hash_val,
        password_iterations=iterations,
        registration_number=registration_number,
        role=role,
    )


def make_hackathon(**overrides):
    now = timezone.now()
    fields = {
        'name': 'HackByte',
        'description': '48 hour hackathon',
        'start_date': now + timedelta(days=10),
        'end_date': now + timedelta(days=12),
        'registration_deadline': now + timedelta(days=5),
        'max_team_size': 4,
        'max_teams': 2,
        'status': Hackathon.STATUS_OPEN,
    }
    fields.update(overrides)
    return Hackathon.objects.create(**fields)


def flaky_registration_save(message, failures):
    """Make HackathonRegistration.save raise IntegrityError(message) for the first ``failures`` calls"""
    original_save = HackathonRegistration.save
    state = {'calls': 0}

    def save(instance, *args, **kwargs):
        state['calls'] += 1
        if state['calls'] <= failures:
            raise IntegrityError(message)
        return original_save(instance, *args, **kwargs)

    return mock.patch.object(HackathonRegistration, 'save', autospec=True, side_effect=save)


class IdentifierFormatTestCase(SimpleTestCase):
    """Test registration number format and validation"""

    def test_format_pads_random_suffix(self):
        self.assertEqual(format_identifier(Namespace.USER, 1704067200500, 42), 'USR17040672005000042')
        self.assertEqual(format_identifier(Namespace.TEAM_REGISTRATION, 1704067200500, 7), 'HACK17040672005000007')

    def test_generate_candidate_uses_clock_and_rng(self):
        allocator, _ = make_allocator(Namespace.TEAM_REGISTRATION)
        self.assertEqual(allocator.generate_candidate(), 'HACK17040672005000000')
        self.assertEqual(allocator.generate_candidate(), 'HACK17040672005000001')

    def test_valid_identifiers(self):
        self.assertTrue(is_valid_identifier(Namespace.USER, 'USR17040672005000042'))
        self.assertTrue(is_valid_identifier(Namespace.TEAM_REGISTRATION, 'HACK123456789'))

    def test_invalid_identifiers(self):
        for value in [None, '', 'USR', 'USR12', 'HACK17040672005000042', 'usr17040672005000042', 'USR1704067200500abc']:
            with self.subTest(value=value):
                self.assertFalse(is_valid_identifier(Namespace.USER, value))

    def test_unknown_namespace_rejected(self):
        with self.assertRaises(ValueError):
            IdentifierAllocator('user')

    def test_identifier_str_is_value(self):
        allocator, _ = make_allocator()
        identifier = allocator.allocate(lambda value: None, owner_ref='owner')
        self.assertEqual(str(identifier), identifier.value)
        self.assertEqual(identifier.owner_ref, 'owner')
        self.assertEqual(identifier.namespace, Namespace.USER)


class AllocatorRetryTestCase(SimpleTestCase):
    """Test bounded retry of the allocator against storage stubs"""

    def test_succeeds_after_k_precheck_collisions(self):
        for k in range(10):
            with self.subTest(k=k):
                allocator, checked = make_allocator(taken_first=k)
                written = []
                identifier = allocator.allocate(written.append)

                self.assertEqual(len(allocator.last_attempts), k + 1)
                self.assertEqual([a.outcome for a in allocator.last_attempts], [COLLIDED] * k + [UNIQUE])
                self.assertEqual([a.attempt_number for a in allocator.last_attempts], list(range(1, k + 2)))
                self.assertEqual(written, [identifier.value])
                self.assertEqual(identifier.value, checked[-1])

    def test_exhausts_after_bound(self):
        allocator, checked = make_allocator(taken_first=10)
        written = []

        with self.assertRaises(ExhaustedAttempts) as ctx:
            allocator.allocate(written.append)

        self.assertEqual(ctx.exception.attempts, 10)
        self.assertEqual(ctx.exception.namespace, 'user')
        self.assertEqual(len(checked), 10)
        self.assertEqual(written, [])
        self.assertTrue(all(a.outcome == COLLIDED for a in allocator.last_attempts))

    def test_commit_time_collisions_are_retried(self):
        allocator, _ = make_allocator(max_attempts=5)
        commits = []

        def owner_write(value):
            commits.append(value)
            if len(commits) <= 4:
                raise IdentifierTaken(value)

        identifier = allocator.allocate(owner_write)

        self.assertEqual(len(commits), 5)
        self.assertEqual(identifier.value, commits[-1])
        self.assertEqual(len(set(commits)), 5)

    def test_commit_time_collisions_exhaust(self):
        allocator, _ = make_allocator(max_attempts=5)

        def owner_write(value):
            raise IdentifierTaken(value)

        with self.assertRaises(ExhaustedAttempts):
            allocator.allocate(owner_write)
        self.assertEqual(len(allocator.last_attempts), 5)

    def test_storage_unavailable_is_not_retried(self):
        allocator, _ = make_allocator()
        owner_write = mock.Mock(side_effect=StorageUnavailable('database is down'))

        with self.assertRaises(StorageUnavailable):
            allocator.allocate(owner_write)
        self.assertEqual(owner_write.call_count, 1)

    def test_pauses_between_retries_only(self):
        sleeps = []
        allocator, _ = make_allocator(taken_first=3, sleeps=sleeps)
        allocator.allocate(lambda value: None)
        self.assertEqual(sleeps, [allocator.retry_delay] * 3)


class ConstraintClassificationTestCase(SimpleTestCase):
    """Test mapping of IntegrityError back to named unique constraints"""

    def test_known_constraints_include_legacy(self):
        known = unique_constraints(HackathonRegistration)
        self.assertEqual(known['uniq_registration_per_hackathon_user'], ('hackathon_id', 'user_id'))
        self.assertEqual(known['uniq_registration_number'], ('registration_number',))
        self.assertEqual(known['uniq_registration_participant_number'], ('participant_number',))
        self.assertNotIn('uniq_registration_participant_number', unique_constraints(AppUser))

    def test_sqlite_messages(self):
        self.assertEqual(
            violated_constraint(HackathonRegistration, IntegrityError(COMPOUND_VIOLATION)),
            'uniq_registration_per_hackathon_user',
        )
        self.assertEqual(
            violated_constraint(HackathonRegistration, IntegrityError(LEGACY_VIOLATION)),
            'uniq_registration_participant_number',
        )
        self.assertEqual(
            violated_constraint(AppUser, IntegrityError('UNIQUE constraint failed: hackathon_appuser.email')),
            'uniq_user_email',
        )

    def test_postgres_message(self):
        exc = IntegrityError(
            'duplicate key value violates unique constraint "uniq_user_registration_number"\n'
            'DETAIL:  Key (registration_number)=(USR17040672005000042) already exists.'
        )
        self.assertEqual(violated_constraint(AppUser, exc), 'uniq_user_registration_number')

    def test_driver_diagnostics(self):
        cause = Exception('duplicate key')
        cause.diag = mock.Mock(constraint_name='uniq_registration_number')
        exc = IntegrityError('duplicate key')
        exc.__cause__ = cause
        self.assertEqual(violated_constraint(HackathonRegistration, exc), 'uniq_registration_number')

    def test_unknown_violation(self):
        self.assertIsNone(violated_constraint(AppUser, IntegrityError('NOT NULL constraint failed: hackathon_appuser.name')))


@override_settings(REGISTRATION_RETRY_DELAY=0)
class CreateAccountTestCase(TestCase):
    """Test account creation and USR number allocation"""

    def test_account_gets_number(self):
        user = create_account(name='Ada', email='Ada@Example.com', password='secret123', phone='+911234567890')

        self.assertTrue(is_valid_identifier(Namespace.USER, user.registration_number))
        self.assertTrue(user.registration_number.startswith('USR'))
        self.assertEqual(user.email, 'ada@example.com')
        self.assertEqual(user.role, AppUser.ROLE_USER)
        self.assertTrue(verify_password(
            'secret123',
            salt_b64=user.password_salt_b64,
            password_hash_b64=user.password_hash_b64,
            iterations=user.password_iterations,
        ))
        user.refresh_from_db()
        self.assertTrue(user.registration_number.startswith('USR'))

    def test_duplicate_email(self):
        create_account(name='Ada', email='ada@example.com', password='secret123')

        with self.assertRaises(DuplicateEmail):
            create_account(name='Ada Again', email='ADA@example.com', password='secret123')
        self.assertEqual(AppUser.objects.count(), 1)

    def test_numbers_are_unique(self):
        users = [make_user(email=f'user{i}@example.com') for i in range(20)]
        numbers = [ensure_registration_number(u).value for u in users]

        self.assertEqual(len(set(numbers)), 20)
        self.assertEqual(
            AppUser.objects.exclude(registration_number__isnull=True).values('registration_number').distinct().count(),
            20,
        )

    def test_commit_time_collision_with_existing_number(self):
        taken = 'USR17040672005000001'
        fresh = 'USR17040672005000002'
        make_user(email='first@example.com', registration_number=taken)

        with mock.patch('hackathon.registration.identifier_exists', return_value=lambda candidate: False), \
                mock.patch.object(IdentifierAllocator, 'generate_candidate', side_effect=[taken, fresh]):
            user = create_account(name='Second', email='second@example.com', password='secret123')

        self.assertEqual(user.registration_number, fresh)
        self.assertEqual(AppUser.objects.filter(registration_number=taken).count(), 1)

    def test_exhaustion_creates_nothing(self):
        with mock.patch('hackathon.registration.identifier_exists', return_value=lambda candidate: True):
            with self.assertRaises(ExhaustedAttempts):
                create_account(name='Ada', email='ada@example.com', password='secret123')
        self.assertFalse(AppUser.objects.filter(email='ada@example.com').exists())

    def test_abort_after_allocation_releases_number(self):
        created = {}
        with self.assertRaises(RuntimeError):
            with transaction.atomic():
                created['user'] = create_account(name='Ada', email='ada@example.com', password='secret123')
                raise RuntimeError('validation failed elsewhere')

        number = created['user'].registration_number
        self.assertTrue(number.startswith('USR'))
        self.assertFalse(AppUser.objects.filter(registration_number=number).exists())
        self.assertFalse(AppUser.objects.filter(email='ada@example.com').exists())

    def test_ensure_keeps_valid_number(self):
        user = make_user(registration_number='USR17040672005000042')
        identifier = ensure_registration_number(user)
        self.assertEqual(identifier.value, 'USR17040672005000042')


@override_settings(REGISTRATION_RETRY_DELAY=0)
class RegisterTeamTestCase(TestCase):
    """Test hackathon team registration and HACK number allocation"""

    def setUp(self):
        """Set up test data"""
        self.hackathon = make_hackathon()
        self.user = make_user(email='p@example.com', registration_number=None)

    def test_example_scenario(self):
        registration = register_team(
            user=self.user,
            hackathon=self.hackathon,
            team_size=2,
            teammates=[{'name': 'A', 'email': 'a@x.com'}],
        )

        self.user.refresh_from_db()
        self.assertTrue(is_valid_identifier(Namespace.USER, self.user.registration_number))
        self.assertTrue(is_valid_identifier(Namespace.TEAM_REGISTRATION, registration.registration_number))
        self.assertEqual(registration.status, HackathonRegistration.STATUS_PENDING)
        self.assertEqual(registration.participant_number, self.user.registration_number)
        self.assertEqual(registration.hackathon_id, self.hackathon.id)
        self.assertEqual(list(registration.teammates.values_list('name', 'email')), [('A', 'a@x.com')])

        number = self.user.registration_number
        with self.assertRaises(AlreadyRegistered):
            register_team(user=self.user, hackathon=self.hackathon, team_size=2, teammates=[{'name': 'A'}])

        self.user.refresh_from_db()
        self.assertEqual(self.user.registration_number, number)
        self.assertEqual(HackathonRegistration.objects.filter(user=self.user).count(), 1)

    def test_reuses_existing_user_number(self):
        user = make_user(email='known@example.com', registration_number='USR17040672005000042')
        registration = register_team(user=user, hackathon=self.hackathon, team_size=1)

        self.assertEqual(registration.participant_number, 'USR17040672005000042')
        user.refresh_from_db()
        self.assertEqual(user.registration_number, 'USR17040672005000042')

    def test_same_user_registers_for_two_hackathons(self):
        other = make_hackathon(name='Second Hack')
        first = register_team(user=self.user, hackathon=self.hackathon, team_size=1)
        second = register_team(user=self.user, hackathon=other, team_size=1)

        self.assertEqual(first.participant_number, second.participant_number)
        self.assertNotEqual(first.registration_number, second.registration_number)

    def test_closed_hackathon(self):
        for hackathon in [
            make_hackathon(name='Draft', status=Hackathon.STATUS_DRAFT),
            make_hackathon(name='Closed', status=Hackathon.STATUS_CLOSED),
            make_hackathon(name='Late', registration_deadline=timezone.now() - timedelta(minutes=1)),
        ]:
            with self.subTest(hackathon=hackathon.name):
                with self.assertRaises(RegistrationClosed):
                    register_team(user=self.user, hackathon=hackathon, team_size=1)
        self.assertFalse(HackathonRegistration.objects.exists())

    def test_team_size_limits(self):
        with self.assertRaises(InvalidTeam):
            register_team(user=self.user, hackathon=self.hackathon, team_size=5)
        with self.assertRaises(InvalidTeam):
            register_team(user=self.user, hackathon=self.hackathon, team_size=2, teammates=[{'name': 'A'}, {'name': 'B'}])

    def test_capacity(self):
        for i in range(2):
            register_team(user=make_user(email=f'team{i}@example.com'), hackathon=self.hackathon, team_size=1)

        with self.assertRaises(CapacityReached) as ctx:
            register_team(user=self.user, hackathon=self.hackathon, team_size=1)
        self.assertEqual(ctx.exception.status_code, 409)

        HackathonRegistration.objects.filter(user__email='team0@example.com').update(
            status=HackathonRegistration.STATUS_REJECTED
        )
        registration = register_team(user=self.user, hackathon=self.hackathon, team_size=1)
        self.assertIsNotNone(registration.pk)

    def test_compound_violation_is_not_retried(self):
        with flaky_registration_save(COMPOUND_VIOLATION, failures=1) as save:
            with self.assertRaises(AlreadyRegistered):
                register_team(user=self.user, hackathon=self.hackathon, team_size=1)

        self.assertEqual(save.call_count, 1)
        self.assertFalse(HackathonRegistration.objects.exists())
        # the number backfilled during the failed attempt was rolled back
        self.assertIsNone(self.user.registration_number)
        self.user.refresh_from_db()
        self.assertIsNone(self.user.registration_number)

    def test_legacy_violation_reissues_user_number(self):
        user = make_user(email='legacy2@example.com', registration_number='USR17040672005000042')

        with flaky_registration_save(LEGACY_VIOLATION, failures=2) as save:
            registration = register_team(user=user, hackathon=self.hackathon, team_size=1)

        self.assertEqual(save.call_count, 3)
        user.refresh_from_db()
        self.assertNotEqual(user.registration_number, 'USR17040672005000042')
        self.assertTrue(is_valid_identifier(Namespace.USER, user.registration_number))
        self.assertEqual(registration.participant_number, user.registration_number)
        self.assertTrue(HackathonRegistration.objects.filter(pk=registration.pk).exists())

    def test_legacy_repair_bound(self):
        with flaky_registration_save(LEGACY_VIOLATION, failures=4) as save:
            register_team(user=self.user, hackathon=self.hackathon, team_size=1)
        self.assertEqual(save.call_count, 5)

    def test_legacy_repair_exhausts(self):
        user = make_user(email='legacy3@example.com', registration_number='USR17040672005000042')

        with flaky_registration_save(LEGACY_VIOLATION, failures=5) as save:
            with self.assertRaises(ExhaustedAttempts) as ctx:
                register_team(user=user, hackathon=self.hackathon, team_size=1)

        self.assertEqual(save.call_count, 5)
        self.assertEqual(ctx.exception.namespace, 'team-registration')
        self.assertFalse(HackathonRegistration.objects.exists())
        self.assertEqual(user.registration_number, 'USR17040672005000042')
        user.refresh_from_db()
        self.assertEqual(user.registration_number, 'USR17040672005000042')

    def test_registration_number_exhaustion(self):
        with mock.patch('hackathon.registration.identifier_exists') as identifier_exists:
            # user numbers are free, every HACK candidate is taken
            identifier_exists.side_effect = lambda model, field: (lambda candidate: model is HackathonRegistration)
            with self.assertRaises(ExhaustedAttempts):
                register_team(user=self.user, hackathon=self.hackathon, team_size=1)

        self.assertFalse(HackathonRegistration.objects.exists())
        self.assertFalse(Teammate.objects.exists())


@override_settings(REGISTRATION_RETRY_DELAY=0)
class BackfillTestCase(TestCase):
    """Test the administrative registration number repair"""

    def setUp(self):
        """Set up test data"""
        self.valid = make_user(email='valid@example.com', registration_number='USR17040672005000042')
        self.missing = make_user(email='missing@example.com', registration_number=None)
        self.empty = make_user(email='empty@example.com', registration_number='')
        self.malformed = make_user(email='bad@example.com', registration_number='USR12')
        self.hackathon = make_hackathon()
        self.registration = HackathonRegistration.objects.create(
            hackathon=self.hackathon,
            user=self.valid,
            team_size=1,
            participant_number=self.valid.registration_number,
        )

    def test_backfill_fixes_missing_and_malformed(self):
        reports = backfill_registration_numbers()

        self.assertEqual(reports['users'].total, 3)
        self.assertEqual(reports['users'].fixed, 3)
        self.assertEqual(reports['users'].errors, 0)
        self.assertEqual(reports['registrations'].total, 1)
        self.assertEqual(reports['registrations'].fixed, 1)

        for user in [self.missing, self.empty, self.malformed]:
            user.refresh_from_db()
            self.assertTrue(is_valid_identifier(Namespace.USER, user.registration_number))

        self.valid.refresh_from_db()
        self.assertEqual(self.valid.registration_number, 'USR17040672005000042')
        self.registration.refresh_from_db()
        self.assertTrue(self.registration.registration_number.startswith('HACK'))

    def test_dry_run_changes_nothing(self):
        reports = backfill_registration_numbers(dry_run=True)

        self.assertEqual(reports['users'].total, 3)
        self.assertEqual(reports['users'].fixed, 0)
        self.missing.refresh_from_db()
        self.assertIsNone(self.missing.registration_number)

    def test_failures_are_reported_per_record(self):
        with mock.patch('hackathon.registration.identifier_exists', return_value=lambda candidate: True):
            reports = backfill_registration_numbers()

        self.assertEqual(reports['users'].fixed, 0)
        self.assertEqual(reports['users'].errors, 3)
        self.assertEqual(
            sorted(e['label'] for e in reports['users'].error_details),
            ['bad@example.com', 'empty@example.com', 'missing@example.com'],
        )
        self.assertEqual(reports['registrations'].errors, 1)
        self.assertEqual(reports['users'].as_dict()['errors'], 3)
        self.malformed.refresh_from_db()
        self.assertEqual(self.malformed.registration_number, 'USR12')

    def test_management_command(self):
        out = StringIO()
        call_command('backfill_registration_numbers', stdout=out)

        self.assertIn('Fixed: 4, errors: 0', out.getvalue())
        self.assertFalse(AppUser.objects.filter(registration_number__isnull=True).exists())

    def test_management_command_dry_run(self):
        out = StringIO()
        call_command('backfill_registration_numbers', '--dry-run', stdout=out)

        self.assertIn('would be replaced', out.getvalue())
        self.assertTrue(AppUser.objects.filter(registration_number__isnull=True).exists())

    def test_admin_action(self):
        modeladmin = mock.Mock()
        assign_missing_registration_numbers(modeladmin, None, AppUser.objects.none())

        self.assertEqual(modeladmin.message_user.call_count, 2)
        self.missing.refresh_from_db()
        self.assertTrue(self.missing.registration_number.startswith('USR'))


@override_settings(REGISTRATION_RETRY_DELAY=0)
class RegisterApiTestCase(TestCase):
    """Test the account registration endpoint"""

    def setUp(self):
        """Set up test data"""
        self.client = Client()

    def _register(self, **payload):
        body = {'name': 'Ada Lovelace', 'email': 'ada@example.com', 'password': 'secret123'}
        body.update(payload)
        return self.client.post(reverse('api_register'), json.dumps(body), content_type='application/json')

    def test_register_success(self):
        response = self._register(phone='+911234567890')

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertTrue(data['registration_number'].startswith('USR'))
        self.assertEqual(data['role'], 'user')
        self.assertEqual(data['phone'], '+911234567890')
        self.assertIn('token', data)
        session = AuthSession.objects.get(token_hash=hash_session_token(data['token']))
        self.assertEqual(session.user.registration_number, data['registration_number'])

    def test_register_judge(self):
        response = self._register(role='judge')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['role'], 'judge')

    def test_register_validation(self):
        cases = [
            ({'name': ''}, 'Please provide name, email, and password'),
            ({'email': 'not-an-email'}, 'Please provide a valid email address'),
            ({'password': '123'}, 'Password must be at least 6 characters long'),
            ({'role': 'admin'}, 'Invalid role.'),
        ]
        for payload, message in cases:
            with self.subTest(payload=payload):
                response = self._register(**payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()['error'], message)
        self.assertFalse(AppUser.objects.exists())

    def test_register_duplicate_email(self):
        self.assertEqual(self._register().status_code, 201)
        response = self._register(name='Someone Else')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'User already exists with this email')

    def test_register_exhausted(self):
        with mock.patch('hackathon.registration.identifier_exists', return_value=lambda candidate: True):
            response = self._register()

        self.assertEqual(response.status_code, 500)
        self.assertNotIn('registration_number', response.json())
        self.assertFalse(AppUser.objects.exists())
        self.assertFalse(AuthSession.objects.exists())

    def test_register_storage_unavailable(self):
        failing = mock.Mock(side_effect=StorageUnavailable('database is down'))
        with mock.patch('hackathon.registration.identifier_exists', return_value=failing):
            response = self._register()

        self.assertEqual(response.status_code, 503)
        self.assertFalse(AppUser.objects.exists())


@override_settings(REGISTRATION_RETRY_DELAY=0)
class HackathonRegisterApiTestCase(TestCase):
    """Test the hackathon team registration endpoints"""

    def setUp(self):
        """Set up test data"""
        self.client = Client()
        self.hackathon = make_hackathon()
        self.user = make_user(email='p@example.com')
        self.token, _ = issue_session(self.user)

    def _post(self, payload, hackathon_id=None, token=None):
        return self.client.post(
            reverse('api_hackathon_register', args=[hackathon_id or self.hackathon.id]),
            json.dumps(payload),
            content_type='application/json',
            HTTP_AUTHORIZATION=f'Bearer {token or self.token}',
        )

    def test_register_team(self):
        response = self._post({'team_size': 2, 'teammates': [{'name': 'A', 'email': 'a@x.com'}]})

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['status'], 'pending')
        self.assertTrue(data['registration_number'].startswith('HACK'))
        self.assertTrue(data['participant_number'].startswith('USR'))
        self.assertEqual(data['teammates'], [{'name': 'A', 'email': 'a@x.com'}])

        response = self._post({'team_size': 2, 'teammates': [{'name': 'A'}]})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'You have already registered for this hackathon')

    def test_my_registrations(self):
        self._post({'team_size': 1})
        response = self.client.get(reverse('api_my_registrations'), HTTP_AUTHORIZATION=f'Bearer {self.token}')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data['registrations']), 1)
        self.assertEqual(data['registrations'][0]['hackathon_name'], 'HackByte')
        self.assertEqual(data['registration_number'], data['registrations'][0]['participant_number'])

    def test_unauthenticated(self):
        response = self.client.post(
            reverse('api_hackathon_register', args=[self.hackathon.id]),
            json.dumps({'team_size': 1}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 401)

    def test_expired_and_revoked_sessions(self):
        token, session = issue_session(self.user)
        AuthSession.objects.filter(pk=session.pk).update(expires_at=timezone.now() - timedelta(days=1))
        self.assertEqual(self._post({'team_size': 1}, token=token).status_code, 401)

        token, session = issue_session(self.user)
        AuthSession.objects.filter(pk=session.pk).update(revoked_at=timezone.now())
        self.assertEqual(self._post({'team_size': 1}, token=token).status_code, 401)

    def test_unknown_hackathon(self):
        self.assertEqual(self._post({'team_size': 1}, hackathon_id=9999).status_code, 404)

    def test_payload_validation(self):
        for payload in [
            {},
            {'team_size': 0},
            {'team_size': 'two'},
            {'team_size': True},
            {'team_size': 2, 'teammates': 'A'},
            {'team_size': 2, 'teammates': [{'email': 'a@x.com'}]},
            {'team_size': 2, 'teammates': [{'name': 'A', 'email': 'nope'}]},
        ]:
            with self.subTest(payload=payload):
                self.assertEqual(self._post(payload).status_code, 400)
        self.assertFalse(HackathonRegistration.objects.exists())

    def test_full_hackathon(self):
        for i in range(2):
            register_team(user=make_user(email=f'team{i}@example.com'), hackathon=self.hackathon, team_size=1)

        response = self._post({'team_size': 1})
        self.assertEqual(response.status_code, 409)

    def test_exhausted(self):
        with mock.patch('hackathon.registration.identifier_exists', return_value=lambda candidate: True):
            response = self._post({'team_size': 1})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()['error'], 'Failed to generate unique registration number. Please try again.')
        self.assertFalse(HackathonRegistration.objects.exists())


@override_settings(REGISTRATION_RETRY_DELAY=0)
class FixRegistrationNumbersApiTestCase(TestCase):
    """Test the admin repair endpoint"""

    def setUp(self):
        """Set up test data"""
        self.client = Client()
        self.admin = make_user(email='admin@example.com', registration_number='USR17040672005000001', role=AppUser.ROLE_ADMIN)
        self.user = make_user(email='user@example.com', registration_number=None)

    def _post(self, user, payload=None):
        token, _ = issue_session(user)
        return self.client.post(
            reverse('api_fix_registration_numbers'),
            json.dumps(payload or {}),
            content_type='application/json',
            HTTP_AUTHORIZATION=f'Bearer {token}',
        )

    def test_requires_admin(self):
        response = self._post(self.user)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error'], 'Admin access required.')

    def test_fix(self):
        response = self._post(self.admin)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['users'], {'total': 1, 'fixed': 1, 'errors': 0, 'error_details': []})
        self.user.refresh_from_db()
        self.assertTrue(self.user.registration_number.startswith('USR'))

    def test_dry_run(self):
        response = self._post(self.admin, {'dry_run': True})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['dry_run'])
        self.user.refresh_from_db()
        self.assertIsNone(self.user.registration_number)


class HealthCheckTestCase(TestCase):
    """Test health check endpoint"""

    def test_health_check(self):
        response = self.client.get(reverse('health'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')


@override_settings(CORS_ALLOWED_ORIGINS=['http://localhost:3000'], CORS_ALLOW_ALL_ORIGINS=False)
class CorsMiddlewareTestCase(TestCase):
    """Test CORS headers"""

    def test_allowed_origin(self):
        response = self.client.get(reverse('health'), HTTP_ORIGIN='http://localhost:3000')
        self.assertEqual(response['Access-Control-Allow-Origin'], 'http://localhost:3000')

    def test_unknown_origin(self):
        response = self.client.get(reverse('health'), HTTP_ORIGIN='https://evil.example.com')
        self.assertNotIn('Access-Control-Allow-Origin', response)

    def test_preflight(self):
        response = self.client.options(reverse('api_register'), HTTP_ORIGIN='http://localhost:3000')
        self.assertEqual(response.status_code, 204)
        self.assertIn('POST', response['Access-Control-Allow-Methods'])


@override_settings(REGISTRATION_RETRY_DELAY=0)
class SeedAdminCommandTestCase(TestCase):
    """Test the seed_admin management command"""

    def test_creates_admin_with_number(self):
        out = StringIO()
        call_command('seed_admin', '--email', 'root@example.com', '--password', 'admin1234', stdout=out)

        admin = AppUser.objects.get(email='root@example.com')
        self.assertEqual(admin.role, AppUser.ROLE_ADMIN)
        self.assertTrue(admin.approved)
        self.assertTrue(admin.registration_number.startswith('USR'))
        self.assertIn(admin.registration_number, out.getvalue())

    def test_existing_admin(self):
        call_command('seed_admin', '--email', 'root@example.com', '--password', 'admin1234', stdout=StringIO())
        with self.assertRaises(CommandError):
            call_command('seed_admin', '--email', 'root@example.com', '--password', 'admin1234', stdout=StringIO())

    def test_short_password(self):
        with self.assertRaises(CommandError):
            call_command('seed_admin', '--email', 'root@example.com', '--password', '123', stdout=StringIO())
        self.assertFalse(AppUser.objects.exists())


class RepairRemoteCommandTestCase(SimpleTestCase):
    """Test the repair_remote management command"""

    def _response(self, status_code, body):
        response = mock.Mock(status_code=status_code, text=json.dumps(body))
        response.json.return_value = body
        return response

    @mock.patch('hackathon.management.commands.repair_remote.requests.post')
    def test_success(self, post):
        post.return_value = self._response(200, {'message': 'Registration numbers fix completed'})
        out = StringIO()

        call_command('repair_remote', 'https://backend.example.com/', '--token', 'abc', stdout=out)

        post.assert_called_once_with(
            'https://backend.example.com/api/auth/fix-registration-numbers',
            json={'dry_run': False},
            headers={'Authorization': 'Bearer abc'},
            timeout=30.0,
        )
        self.assertIn('Registration numbers fix completed', out.getvalue())

    @mock.patch('hackathon.management.commands.repair_remote.requests.post')
    def test_http_error(self, post):
        post.return_value = self._response(401, {'error': 'Admin access required.'})
        with self.assertRaises(CommandError):
            call_command('repair_remote', 'https://backend.example.com', '--token', 'abc', stdout=StringIO())

    @mock.patch('hackathon.management.commands.repair_remote.requests.post')
    def test_network_error(self, post):
        post.side_effect = requests.exceptions.ConnectionError('unreachable')
        with self.assertRaises(CommandError):
            call_command('repair_remote', 'https://backend.example.com', '--token', 'abc', stdout=StringIO())

    def test_requires_token(self):
        with self.assertRaises(CommandError):
            call_command('repair_remote', 'https://backend.example.com', '--token', '', stdout=StringIO())
