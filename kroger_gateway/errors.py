"""Exception taxonomy for the Kroger integration."""


class KrogerError(Exception):
    """Base class for failures talking to the Kroger partner API."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(KrogerError):
    """Kroger rejected the application's client credentials."""


class OAuthError(KrogerError):
    """A user authorization-code or refresh grant failed."""

    status_code = 401


class ReauthRequired(KrogerError):
    """The stored user token is missing or could not be refreshed.

    The local token row has already been removed when this is raised; the
    caller has to send the user through the OAuth flow again.
    """

    status_code = 401


class CartError(KrogerError):
    """Adding to or reading the user's Kroger cart failed."""


class MealPlanError(Exception):
    """The AI meal planner could not produce a usable answer."""

    status_code = 500
