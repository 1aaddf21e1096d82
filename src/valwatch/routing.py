"""Base URLs for the local control plane and the regional backend clusters."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from valwatch.auth import Session
    from valwatch.lockfile import LocalCredentials

BACKEND_DOMAIN = "a.pvp.net"


def local_base(credentials: "LocalCredentials") -> str:
    """Local control API served by the Riot Client itself."""
    return f"{credentials.transport}://127.0.0.1:{credentials.port}"


def profile_base(session: "Session") -> str:
    """Player data (PD) cluster: match history, MMR, name service."""
    return f"https://pd.{session.shard}.{BACKEND_DOMAIN}"


def lobby_base(session: "Session") -> str:
    """Game lobby zone (GLZ) cluster: pregame and coregame state."""
    return f"https://glz-{session.region}-1.{session.shard}.{BACKEND_DOMAIN}"
