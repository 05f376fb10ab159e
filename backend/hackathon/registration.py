"""
Account creation, hackathon team registration and registration number backfill.

All of them allocate numbers through IdentifierAllocator and commit through
storage.claim_identifier, so an aborted transaction never leaves a number
claimed without its owner row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from django.conf import settings
from django.db import IntegrityError, transaction

from .auth import hash_password
from .exceptions import (
    AllocationError,
    AlreadyRegistered,
    CapacityReached,
    DuplicateEmail,
    ExhaustedAttempts,
    InvalidTeam,
    LegacyConstraintViolation,
    RegistrationClosed,
    StorageUnavailable,
)
from .identifiers import (
    MAX_ATTEMPTS,
    REPAIR_MAX_ATTEMPTS,
    RETRY_DELAY,
    IdentifierAllocator,
    Namespace,
    RegistrationIdentifier,
    is_valid_identifier,
)
from .models import AppUser, Hackathon, HackathonRegistration, Teammate
from .storage import LEGACY_UNIQUE_CONSTRAINTS, claim_identifier, identifier_exists, violated_constraint

logger = logging.getLogger(__name__)

USER_EMAIL_CONSTRAINT = 'uniq_user_email'
USER_NUMBER_CONSTRAINT = 'uniq_user_registration_number'
REGISTRATION_NUMBER_CONSTRAINT = 'uniq_registration_number'
REGISTRATION_PER_USER_CONSTRAINT = 'uniq_registration_per_hackathon_user'


def _allocator(namespace: Namespace, model, **kwargs) -> IdentifierAllocator:
    kwargs.setdefault('exists', identifier_exists(model, 'registration_number'))
    kwargs.setdefault('max_attempts', getattr(settings, 'REGISTRATION_NUMBER_MAX_ATTEMPTS', MAX_ATTEMPTS))
    kwargs.setdefault('retry_delay', getattr(settings, 'REGISTRATION_RETRY_DELAY', RETRY_DELAY))
    return IdentifierAllocator(namespace, **kwargs)


def user_number_allocator(**kwargs) -> IdentifierAllocator:
    return _allocator(Namespace.USER, AppUser, **kwargs)


def team_registration_allocator(**kwargs) -> IdentifierAllocator:
    return _allocator(Namespace.TEAM_REGISTRATION, HackathonRegistration, **kwargs)


def _claim_user_number(user: AppUser, value: str) -> None:
    update_fields = None if user._state.adding else ['registration_number', 'updated_at']
    try:
        claim_identifier(user, 'registration_number', value, constraint=USER_NUMBER_CONSTRAINT, update_fields=update_fields)
    except IntegrityError as exc:
        if violated_constraint(AppUser, exc) == USER_EMAIL_CONSTRAINT:
            raise DuplicateEmail(user.email) from exc
        raise


def _claim_registration_number(registration: HackathonRegistration, value: str) -> None:
    if registration._state.adding:
        update_fields = None
    else:
        update_fields = ['registration_number', 'participant_number', 'updated_at']
    try:
        claim_identifier(
            registration,
            'registration_number',
            value,
            constraint=REGISTRATION_NUMBER_CONSTRAINT,
            update_fields=update_fields,
        )
    except IntegrityError as exc:
        constraint = violated_constraint(HackathonRegistration, exc)
        if constraint == REGISTRATION_PER_USER_CONSTRAINT:
            raise AlreadyRegistered(registration.hackathon_id, registration.user_id) from exc
        if constraint in LEGACY_UNIQUE_CONSTRAINTS['hackathonregistration']:
            raise LegacyConstraintViolation(constraint) from exc
        raise


def create_account(
    *,
    name: str,
    email: str,
    password: str,
    role: str = AppUser.ROLE_USER,
    phone: str | None = None,
    approved: bool = False,
) -> AppUser:
    """
    Create an account and give it a USR number in the same transaction.

    Raises DuplicateEmail, ExhaustedAttempts or StorageUnavailable; in every
    failure case no account row survives.
    """
    email = email.strip().lower()

    with transaction.atomic():
        if AppUser.objects.filter(email__iexact=email).exists():
            raise DuplicateEmail(email)

        salt_b64, password_hash_b64, iterations = hash_password(password)
        user = AppUser(
            name=name,
            email=email,
            phone=phone or None,
            password_salt_b64=salt_b64,
            password_hash_b64=password_hash_b64,
            password_iterations=iterations,
            role=role,
            approved=approved,
            is_active=True,
        )
        identifier = user_number_allocator().allocate(lambda value: _claim_user_number(user, value), owner_ref=user)

    logger.info(f'Created account {user.pk} ({email}) with registration number {identifier}')
    return user


def ensure_registration_number(user: AppUser, *, force: bool = False) -> RegistrationIdentifier:
    """Return the user's USR number, allocating one if missing/invalid or if ``force`` is set."""
    if not force and is_valid_identifier(Namespace.USER, user.registration_number):
        return RegistrationIdentifier(user.registration_number, Namespace.USER, user)

    previous = user.registration_number
    identifier = user_number_allocator().allocate(lambda value: _claim_user_number(user, value), owner_ref=user)
    logger.info(f'Assigned registration number {identifier} to user {user.pk} (was {previous!r})')
    return identifier


def _commit_registration(registration: HackathonRegistration, user: AppUser) -> RegistrationIdentifier:
    allocator = team_registration_allocator()
    bound = getattr(settings, 'REGISTRATION_REPAIR_MAX_ATTEMPTS', REPAIR_MAX_ATTEMPTS)

    for attempt in range(1, bound + 1):
        try:
            return allocator.allocate(
                lambda value: _claim_registration_number(registration, value),
                owner_ref=registration,
            )
        except LegacyConstraintViolation as exc:
            logger.warning(f'{exc} while registering user {user.pk} (attempt {attempt}/{bound})')
            if attempt < bound:
                registration.participant_number = ensure_registration_number(user, force=True).value

    logger.error(f'Legacy participant number repair exhausted for user {user.pk} after {bound} attempts')
    raise ExhaustedAttempts(Namespace.TEAM_REGISTRATION.value, bound)


def register_team(
    *,
    user: AppUser,
    hackathon: Hackathon,
    team_size: int,
    teammates: Iterable[dict] = (),
) -> HackathonRegistration:
    """
    Register ``user``'s team for ``hackathon`` with status pending.

    The (hackathon, user) duplicate check runs before any number is
    allocated; the compound unique constraint backs it up at commit time.
    """
    teammates = list(teammates)
    previous_number = user.registration_number

    try:
        registration, identifier = _register_team(user, hackathon, team_size, teammates)
    except Exception:
        # the transaction rolled back any number assigned to the user
        user.registration_number = previous_number
        raise

    logger.info(f'User {user.pk} registered for hackathon {hackathon.pk} as {identifier}')
    return registration


def _register_team(user, hackathon, team_size, teammates):
    with transaction.atomic():
        hackathon = Hackathon.objects.select_for_update().get(pk=hackathon.pk)

        if HackathonRegistration.objects.filter(hackathon=hackathon, user=user).exists():
            raise AlreadyRegistered(hackathon.pk, user.pk)

        if not hackathon.is_accepting_registrations():
            raise RegistrationClosed('Registration is closed for this hackathon')

        if team_size < 1 or team_size > hackathon.max_team_size:
            raise InvalidTeam(f'Team size must be between 1 and {hackathon.max_team_size}')
        if len(teammates) > team_size - 1:
            raise InvalidTeam(f'A team of {team_size} can list at most {team_size - 1} teammates')

        registered = (
            HackathonRegistration.objects.filter(hackathon=hackathon)
            .exclude(status=HackathonRegistration.STATUS_REJECTED)
            .count()
        )
        if registered >= hackathon.max_teams:
            raise CapacityReached(hackathon.max_teams)

        participant = ensure_registration_number(user)
        registration = HackathonRegistration(
            hackathon=hackathon,
            user=user,
            team_size=team_size,
            participant_number=participant.value,
            status=HackathonRegistration.STATUS_PENDING,
        )
        identifier = _commit_registration(registration, user)

        Teammate.objects.bulk_create(
            [Teammate(registration=registration, name=m['name'], email=m.get('email') or None) for m in teammates]
        )

    return registration, identifier


@dataclass
class BackfillReport:
    namespace: str
    total: int = 0
    fixed: int = 0
    changes: list[dict] = field(default_factory=list)
    error_details: list[dict] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.error_details)

    def as_dict(self) -> dict:
        return {
            'total': self.total,
            'fixed': self.fixed,
            'errors': self.errors,
            'error_details': self.error_details,
        }


def _backfill(report: BackfillReport, records, assign, describe, dry_run: bool) -> BackfillReport:
    report.total = len(records)
    logger.info(f'Found {report.total} {report.namespace} records without a valid registration number')

    for record in records:
        previous = record.registration_number
        if dry_run:
            report.changes.append({'id': record.pk, 'label': describe(record), 'old': previous, 'new': None})
            continue
        try:
            with transaction.atomic():
                identifier = assign(record)
        except (AllocationError, StorageUnavailable) as exc:
            logger.error(f'Could not fix {report.namespace} record {record.pk}: {exc}')
            report.error_details.append({'id': record.pk, 'label': describe(record), 'error': str(exc)})
            continue
        report.fixed += 1
        report.changes.append({'id': record.pk, 'label': describe(record), 'old': previous, 'new': identifier.value})

    return report


def _assign_registration_number(registration: HackathonRegistration) -> RegistrationIdentifier:
    return team_registration_allocator().allocate(
        lambda value: _claim_registration_number(registration, value),
        owner_ref=registration,
    )


def backfill_registration_numbers(*, dry_run: bool = False) -> dict[str, BackfillReport]:
    """
    Give a fresh number to every user and team registration whose number is
    missing or malformed. Each record is fixed in its own transaction and
    failures are reported per record.
    """
    users = [
        u for u in AppUser.objects.order_by('id')
        if not is_valid_identifier(Namespace.USER, u.registration_number)
    ]
    registrations = [
        r for r in HackathonRegistration.objects.order_by('id')
        if not is_valid_identifier(Namespace.TEAM_REGISTRATION, r.registration_number)
    ]

    return {
        'users': _backfill(
            BackfillReport(Namespace.USER.value),
            users,
            ensure_registration_number,
            lambda u: u.email,
            dry_run,
        ),
        'registrations': _backfill(
            BackfillReport(Namespace.TEAM_REGISTRATION.value),
            registrations,
            _assign_registration_number,
            lambda r: f'hackathon {r.hackathon_id} / user {r.user_id}',
            dry_run,
        ),
    }
