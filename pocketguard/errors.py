"""Exception classes for PocketGuard."""


class PocketGuardError(Exception):
    """Base exception for PocketGuard."""
    pass


class ConfigError(PocketGuardError):
    """Configuration-related errors."""
    pass


class ValidationError(PocketGuardError, ValueError):
    """Rejected input data."""
    pass


class NotFoundError(PocketGuardError, LookupError):
    """A requested record does not exist for this user."""
    pass


class AuthenticationError(PocketGuardError):
    """Missing, invalid or expired credentials."""
    pass


class PermissionDeniedError(PocketGuardError):
    """The caller may not act on another user's records."""
    pass
