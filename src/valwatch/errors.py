"""Exception types raised by the session, routing and API client layers."""

from typing import Optional


class ValorantError(Exception):
    """Base class for every error raised by valwatch."""


class LockfileNotFound(ValorantError):
    """No Riot Client lockfile at any candidate path."""

    def __init__(self, searched: Optional[list] = None) -> None:
        self.searched = list(searched or [])
        super().__init__("Valorant lockfile not found - is Valorant running?")


class LockfileMalformed(ValorantError):
    """Lockfile exists but could not be parsed."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Lockfile malformed"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class AuthFailed(ValorantError):
    """Local handshake or token decoding failed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Auth failed: {reason}")


class TransportError(ValorantError):
    """Network failure talking to the local client or a backend cluster."""


class NotInMatch(ValorantError):
    """The player is not in the requested game phase."""

    def __init__(self) -> None:
        super().__init__("Not in a match")


class ApiError(ValorantError):
    """A backend endpoint answered with a non-success status."""

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"API error {status}: {message}")
