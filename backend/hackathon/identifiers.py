"""
Registration number allocation.

Numbers look like USR17040672000000042 / HACK17040672000001234:
namespace prefix, epoch milliseconds, 4-digit zero-padded random suffix.

The allocator never decides uniqueness on its own. The optional ``exists``
pre-check only skips candidates that are obviously taken; the owner write
is the authority and signals a commit-time collision by raising
IdentifierTaken.
"""
from __future__ import annotations

import enum
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Any, Callable

from .exceptions import ExhaustedAttempts, IdentifierTaken


logger = logging.getLogger(__name__)

RANDOM_WIDTH = 4
MAX_ATTEMPTS = 10
REPAIR_MAX_ATTEMPTS = 5
RETRY_DELAY = 0.01  # seconds

UNIQUE = 'unique'
COLLIDED = 'collided'


class Namespace(str, enum.Enum):
    USER = 'user'
    TEAM_REGISTRATION = 'team-registration'

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES = {
    Namespace.USER: 'USR',
    Namespace.TEAM_REGISTRATION: 'HACK',
}

# Accepts older numbers with truncated timestamps / 3-digit suffixes too.
_VALID_RE = {
    namespace: re.compile(rf'{prefix}\d{{8,}}')
    for namespace, prefix in _PREFIXES.items()
}


def format_identifier(namespace: Namespace, millis: int, random_part: int) -> str:
    return f'{namespace.prefix}{millis}{random_part:0{RANDOM_WIDTH}d}'


def is_valid_identifier(namespace: Namespace, value: str | None) -> bool:
    if not value or not isinstance(value, str):
        return False
    return _VALID_RE[namespace].fullmatch(value) is not None


@dataclass(frozen=True)
class RegistrationIdentifier:
    value: str
    namespace: Namespace
    owner_ref: Any = None

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AllocationAttempt:
    candidate_value: str
    namespace: Namespace
    attempt_number: int
    outcome: str


class IdentifierAllocator:
    def __init__(
        self,
        namespace: Namespace,
        *,
        exists: Callable[[str], bool] | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not isinstance(namespace, Namespace):
            raise ValueError(f'Unknown registration number namespace: {namespace!r}')
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')

        self.namespace = namespace
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._exists = exists
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._sleep = sleep
        self.last_attempts: tuple[AllocationAttempt, ...] = ()

    def generate_candidate(self) -> str:
        millis = int(self._clock() * 1000)
        return format_identifier(self.namespace, millis, self._rng.randrange(10**RANDOM_WIDTH))

    def allocate(self, owner_write: Callable[[str], Any], owner_ref: Any = None) -> RegistrationIdentifier:
        """
        Generate candidates until ``owner_write`` accepts one.

        ``owner_write(candidate)`` persists the candidate on the owner record
        and raises IdentifierTaken when storage reports it as already used.
        Any other exception (StorageUnavailable included) propagates as-is.
        Raises ExhaustedAttempts once ``max_attempts`` candidates collided.
        """
        attempts: list[AllocationAttempt] = []

        try:
            for attempt_number in range(1, self.max_attempts + 1):
                if attempt_number > 1 and self.retry_delay:
                    self._sleep(self.retry_delay)

                candidate = self.generate_candidate()

                if self._exists is not None and self._exists(candidate):
                    attempts.append(AllocationAttempt(candidate, self.namespace, attempt_number, COLLIDED))
                    logger.info(f'{self.namespace.value} number {candidate} already in use (attempt {attempt_number})')
                    continue

                try:
                    owner_write(candidate)
                except IdentifierTaken:
                    attempts.append(AllocationAttempt(candidate, self.namespace, attempt_number, COLLIDED))
                    logger.warning(
                        f'{self.namespace.value} number {candidate} rejected by storage at commit (attempt {attempt_number})'
                    )
                    continue

                attempts.append(AllocationAttempt(candidate, self.namespace, attempt_number, UNIQUE))
                return RegistrationIdentifier(candidate, self.namespace, owner_ref)
        finally:
            self.last_attempts = tuple(attempts)

        logger.error(f'Gave up allocating a {self.namespace.value} number after {self.max_attempts} attempts')
        raise ExhaustedAttempts(self.namespace.value, self.max_attempts)
