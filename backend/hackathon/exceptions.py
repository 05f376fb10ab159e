from __future__ import annotations


class AllocationError(RuntimeError):
    pass


class ExhaustedAttempts(AllocationError):
    def __init__(self, namespace: str, attempts: int):
        self.namespace = namespace
        self.attempts = attempts
        super().__init__(f'Could not allocate a unique {namespace} registration number after {attempts} attempts')


class IdentifierTaken(AllocationError):
    """Raised by an owner write when the candidate is already claimed."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f'Registration number already taken: {value}')


class LegacyConstraintViolation(AllocationError):
    def __init__(self, constraint: str):
        self.constraint = constraint
        super().__init__(f'Legacy unique constraint violated: {constraint}')


class StorageUnavailable(RuntimeError):
    pass


class RegistrationError(Exception):
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DuplicateEmail(RegistrationError):
    def __init__(self, email: str):
        self.email = email
        super().__init__('User already exists with this email')


class AlreadyRegistered(RegistrationError):
    def __init__(self, hackathon_id=None, user_id=None):
        self.hackathon_id = hackathon_id
        self.user_id = user_id
        super().__init__('You have already registered for this hackathon')


class RegistrationClosed(RegistrationError):
    pass


class InvalidTeam(RegistrationError):
    pass


class CapacityReached(RegistrationError):
    status_code = 409

    def __init__(self, max_teams: int):
        self.max_teams = max_teams
        super().__init__(f'Hackathon is full ({max_teams} teams registered)')
