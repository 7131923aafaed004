"""Typed outcomes for the identity core.

Learn: Services raise these instead of returning sentinel values. Each error
carries the HTTP status it maps to and a message that is safe to show the
caller — no internal ids, no constraint names, no stack state. The API layer
installs one exception handler for the whole hierarchy (see gatehouse.main).
"""


class GatehouseError(Exception):
    """Base class for all caller-facing identity errors."""

    status_code = 400
    message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# ─── Input ───────────────────────────────────────────────


class ValidationError(GatehouseError):
    """Malformed input. The caller corrects it and retries."""

    status_code = 400
    message = "Invalid input"


class UnknownProvider(ValidationError):
    message = "Unsupported sign-in provider"


class MissingEmailClaim(GatehouseError):
    """The provider profile has no email, so it cannot be matched to an account.

    Not retryable without reconfiguring the provider (e.g. requesting the
    email scope).
    """

    status_code = 400
    message = "The sign-in provider did not share an email address"


class Conflict(GatehouseError):
    status_code = 409
    message = "An account with this email already exists"


class LinkNotPermitted(GatehouseError):
    status_code = 409
    message = "This sign-in method cannot be linked to the existing account"


# ─── Credentials ─────────────────────────────────────────


class InvalidCredentials(GatehouseError):
    """Generic failure — never says whether the email is registered."""

    status_code = 401
    message = "Invalid email or password"


class NoPasswordChannel(GatehouseError):
    """The account exists but has no password; it signs in through a provider."""

    status_code = 401
    message = "Please use external sign-in (Google or Apple) for this account"


# ─── Gate ────────────────────────────────────────────────


class Unauthenticated(GatehouseError):
    status_code = 401
    message = "Unauthorized - Please log in"


class SessionInvalid(Unauthenticated):
    """Token is malformed, tampered with, unknown, or already destroyed."""


class SessionExpired(Unauthenticated):
    """Token was genuine but its session window has passed."""


class Forbidden(GatehouseError):
    status_code = 403
    message = "Forbidden"


# ─── Infrastructure ──────────────────────────────────────


class TransientStoreFailure(GatehouseError):
    """Store timed out or kept conflicting. Safe to retry the whole step."""

    status_code = 503
    message = "Service temporarily unavailable, please retry"
