"""valwatch: session access and live log events for a running VALORANT client."""

from typing import Optional

__version__ = "0.1.0"

from valwatch.errors import (
    ValorantError,
    LockfileNotFound,
    LockfileMalformed,
    AuthFailed,
    TransportError,
    NotInMatch,
    ApiError,
)
from valwatch.lockfile import LocalCredentials, read_lockfile
from valwatch.auth import Session, SessionManager, authenticate, resolve_routing
from valwatch.routing import local_base, profile_base, lobby_base
from valwatch.events import (
    LogEvent,
    RoundEnded,
    MatchEnded,
    PlayerDied,
    BombInteraction,
    GameplayStarted,
    classify,
)
from valwatch.bus import EventBus, Subscription
from valwatch.tailer import LogTailer, TailerState
from valwatch.client import ValorantClient


def create_event_pipeline(
    log_path: Optional[str] = None,
    capacity: int = 64,
    poll_interval: float = 0.1,
) -> tuple[LogTailer, EventBus]:
    """Create a connected tailer -> bus pipeline.

    Convenience factory that wires the log tailer to publish on a new bus.

    Args:
        log_path: Path to ShooterGame.log. Defaults to VALORANT_LOG_PATH env
                 var or the standard Windows location.
        capacity: Per-subscriber buffer size.
        poll_interval: Seconds between reads while the log is idle.

    Returns:
        Tuple of (tailer, bus). Subscribe before starting the tailer to
        see every event it publishes.

    Example:
        tailer, bus = create_event_pipeline()
        sub = bus.subscribe()
        with tailer:
            print(sub.get(timeout=60))
    """
    bus = EventBus(capacity=capacity)
    tailer = LogTailer(bus, log_path=log_path, poll_interval=poll_interval)
    return tailer, bus


__all__ = [
    "__version__",
    "ValorantError",
    "LockfileNotFound",
    "LockfileMalformed",
    "AuthFailed",
    "TransportError",
    "NotInMatch",
    "ApiError",
    "LocalCredentials",
    "read_lockfile",
    "Session",
    "SessionManager",
    "authenticate",
    "resolve_routing",
    "local_base",
    "profile_base",
    "lobby_base",
    "LogEvent",
    "RoundEnded",
    "MatchEnded",
    "PlayerDied",
    "BombInteraction",
    "GameplayStarted",
    "classify",
    "EventBus",
    "Subscription",
    "LogTailer",
    "TailerState",
    "ValorantClient",
    "create_event_pipeline",
]
