"""
ORM side of registration number allocation.

Unique constraints are named in model Meta so a commit-time IntegrityError
can be traced back to the rule that rejected it, whatever the backend.
"""
from __future__ import annotations

import re
from typing import Callable

from django.db import IntegrityError, InterfaceError, OperationalError, models, transaction

from .exceptions import IdentifierTaken, StorageUnavailable


# Dropped by migration 0002. Databases that skipped the migration still enforce them.
LEGACY_UNIQUE_CONSTRAINTS = {
    'hackathonregistration': {
        'uniq_registration_participant_number': ('participant_number',),
    },
}

# SQLite: "UNIQUE constraint failed: hackathon_appuser.email"
_SQLITE_UNIQUE_RE = re.compile(r'UNIQUE constraint failed: (?P<columns>[\w., ]+)')


def unique_constraints(model) -> dict[str, tuple[str, ...]]:
    known: dict[str, tuple[str, ...]] = {}
    for constraint in model._meta.constraints:
        if isinstance(constraint, models.UniqueConstraint) and constraint.fields:
            known[constraint.name] = tuple(model._meta.get_field(f).column for f in constraint.fields)
    known.update(LEGACY_UNIQUE_CONSTRAINTS.get(model._meta.model_name, {}))
    return known


def violated_constraint(model, exc: IntegrityError) -> str | None:
    known = unique_constraints(model)

    # psycopg exposes the constraint name directly
    diag = getattr(exc.__cause__, 'diag', None)
    name = getattr(diag, 'constraint_name', None)
    if name in known:
        return name

    message = str(exc)
    for name in sorted(known, key=len, reverse=True):
        if name in message:
            return name

    match = _SQLITE_UNIQUE_RE.search(message)
    if match:
        columns = sorted(part.strip().rsplit('.', 1)[-1] for part in match.group('columns').split(','))
        for name, constraint_columns in known.items():
            if sorted(constraint_columns) == columns:
                return name
    return None


def identifier_exists(model, field: str) -> Callable[[str], bool]:
    def exists(candidate: str) -> bool:
        try:
            return model.objects.filter(**{field: candidate}).exists()
        except (OperationalError, InterfaceError) as exc:
            raise StorageUnavailable(str(exc)) from exc

    return exists


def claim_identifier(instance, field: str, value: str, *, constraint: str, update_fields=None) -> None:
    """
    Save ``instance`` with ``field`` set to ``value`` inside a savepoint.

    A violation of ``constraint`` becomes IdentifierTaken; other integrity
    errors are re-raised for the caller to classify. The previous field value
    is restored whenever the save fails.
    """
    previous = getattr(instance, field)
    setattr(instance, field, value)
    try:
        with transaction.atomic():
            instance.save(update_fields=update_fields)
    except IntegrityError as exc:
        setattr(instance, field, previous)
        if violated_constraint(type(instance), exc) == constraint:
            raise IdentifierTaken(value) from exc
        raise
    except (OperationalError, InterfaceError) as exc:
        setattr(instance, field, previous)
        raise StorageUnavailable(str(exc)) from exc
