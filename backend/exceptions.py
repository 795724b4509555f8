# exceptions.py — Panel error taxonomy, rendered by the handler in main.py


class PanelError(Exception):
    """Base class for errors surfaced to panel clients."""

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(PanelError):
    status_code = 401


class AuthorizationError(PanelError):
    status_code = 403


class ValidationError(PanelError):
    status_code = 400


class IntegrityError(PanelError):
    status_code = 400


class ConflictError(PanelError):
    status_code = 409


class NotFoundError(PanelError):
    status_code = 404


class RateLimitError(PanelError):
    status_code = 429


class CapacityError(PanelError):
    status_code = 503


class InfrastructureError(PanelError):
    status_code = 500


# Canonical error messages the panel frontend matches on
INVALID_OR_EXPIRED_TOKEN = "invalidOrExpiredToken"
SESSION_ALREADY_ACTIVE = "sessionAlreadyActive"
SESSION_NOT_ACTIVE = "sessionNotActive"
INVALID_PANEL_DATA = "invalidPanelData"
MFA_NOT_SETUP = "mfaNotSetup"
MFA_INVALID_CODE = "mfaInvalidCode"
NOT_STAFF = "You are not staff"
INVALID_REDIRECT = "Invalid redirect url"
INVALID_VERSION = "Invalid version"
