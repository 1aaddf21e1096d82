"""FastMCP server exposing the running VALORANT client to MCP clients.

Tools query live match, profile and rank data through ValorantClient, and
get_log_events() streams gameplay events tailed from ShooterGame.log.
"""

import logging
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from valwatch.bus import EventBus, Subscription
from valwatch.client import ValorantClient
from valwatch.errors import NotInMatch, ValorantError
from valwatch.settings import get_settings
from valwatch.tailer import LogTailer

logger = logging.getLogger(__name__)

# Initialize FastMCP server with STDIO transport
mcp = FastMCP("valorant")

# Module-level state instances
bus: EventBus = EventBus(capacity=get_settings().get("buffer_size"))
tailer: Optional[LogTailer] = None
_events: Optional[Subscription] = None

# Lazy-connected client (the game may start after the server)
_client: Optional[ValorantClient] = None


def _get_client() -> ValorantClient:
    """Get or connect the local API client (lazy loading)."""
    global _client
    if _client is None:
        settings = get_settings()
        logger.info("Connecting to VALORANT local API...")
        _client = ValorantClient.connect(timeout=settings.get("http_timeout"))
    return _client


def _error(e: Exception) -> dict[str, Any]:
    logger.error(f"Tool error: {e}")
    return {"error": str(e)}


def start_watching() -> None:
    """Start tailing the log and buffering events for get_log_events()."""
    global tailer, _events
    if tailer is not None and tailer.is_running:
        logger.debug("Tailer already running")
        return
    if tailer is not None:
        # A tailer that stopped on its own still has to release its resources
        tailer.stop()

    settings = get_settings()
    if _events is None or _events.closed:
        _events = bus.subscribe()

    tailer = LogTailer(
        bus,
        log_path=settings.get("log_path"),
        poll_interval=settings.get("poll_interval"),
    )
    if not tailer.start():
        logger.warning("Log tailing unavailable - is VALORANT installed?")


def stop_watching() -> None:
    """Stop the tailer and drop buffered events."""
    global tailer, _events
    if tailer is not None:
        tailer.stop()
        tailer = None
    if _events is not None:
        _events.close()
        _events = None


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Report whether the client is reachable and which game phase it is in.

    Returns:
        {"running": bool, "phase": "menu" | "pregame" | "ingame"} or
        {"running": False, "error": message}.
    """
    try:
        return {"running": True, "phase": _get_client().game_phase()}
    except ValorantError as e:
        return {"running": False, "error": str(e)}


@mcp.tool()
def get_auth() -> dict[str, Any]:
    """Signed-in player's id, Riot ID and routing (shard/region)."""
    try:
        client = _get_client()
        session = client.manager.snapshot()
        name, tag = "", ""
        try:
            names = client.resolve_names([session.player_id])
            if names:
                name, tag = names[0]["name"], names[0]["tag"]
        except ValorantError as e:
            logger.debug(f"Name lookup failed: {e}")
        return {
            "puuid": session.player_id,
            "name": name,
            "tag": tag,
            "shard": session.shard,
            "region": session.region,
        }
    except ValorantError as e:
        return _error(e)


@mcp.tool()
def get_pregame_match() -> dict[str, Any]:
    """Agent-select match data for the signed-in player."""
    try:
        client = _get_client()
        player = client.pregame_player()
        return client.pregame_match(player["MatchID"])
    except NotInMatch:
        return {"error": "Not in agent select"}
    except (ValorantError, KeyError) as e:
        return _error(e)


@mcp.tool()
def get_coregame_match() -> dict[str, Any]:
    """Live match data (map, mode, players) for the signed-in player."""
    try:
        client = _get_client()
        player = client.coregame_player()
        return client.coregame_match(player["MatchID"])
    except NotInMatch:
        return {"error": "Not in match"}
    except (ValorantError, KeyError) as e:
        return _error(e)


@mcp.tool()
def get_coregame_loadouts() -> dict[str, Any]:
    """Weapon and skin loadouts of every player in the live match."""
    try:
        client = _get_client()
        player = client.coregame_player()
        return client.coregame_loadouts(player["MatchID"])
    except NotInMatch:
        return {"error": "Not in match"}
    except (ValorantError, KeyError) as e:
        return _error(e)


@mcp.tool()
def get_match_history(count: int = 20) -> dict[str, Any]:
    """Recent competitive matches of the signed-in player (max 100)."""
    count = max(1, min(count, 100))
    try:
        history = _get_client().match_history(count=count)
        return {"history": history, "count": len(history)}
    except ValorantError as e:
        return _error(e)


@mcp.tool()
def get_mmr(puuid: str = "me") -> dict[str, Any]:
    """Rank / MMR data for a player. "me" means the signed-in player."""
    try:
        client = _get_client()
        target = client.manager.player_id if puuid == "me" else puuid
        return client.mmr(target)
    except ValorantError as e:
        return _error(e)


@mcp.tool()
def get_match_details(match_id: str) -> dict[str, Any]:
    """Post-match details (rounds, kills, damage) for a match id."""
    try:
        return _get_client().match_details(match_id)
    except ValorantError as e:
        return _error(e)


@mcp.tool()
def resolve_names(puuids: list[str]) -> dict[str, Any]:
    """Riot IDs (name + tag) for a list of player ids."""
    try:
        return {"players": _get_client().resolve_names(puuids)}
    except ValorantError as e:
        return _error(e)


@mcp.tool()
def lookup_player(name: str, tag: str) -> dict[str, Any]:
    """Player id for a Riot ID such as name="Tenz", tag="0505"."""
    try:
        return {"puuid": _get_client().lookup_player(name, tag)}
    except ValorantError as e:
        return _error(e)


@mcp.tool()
def get_log_events(wait_seconds: float = 0.0) -> dict[str, Any]:
    """Gameplay events seen in the live log since the previous call.

    Events: round_ended, match_ended, player_died, bomb_interaction,
    gameplay_started. Starts the log tailer on first use.

    Args:
        wait_seconds: Block up to this long for the first event when none
                      are buffered (max 30).

    Returns:
        {"events": [...], "dropped": n, "tailing": bool}
    """
    start_watching()
    sub = _events
    events = []
    if sub is not None:
        events = sub.drain()
        if not events and wait_seconds > 0:
            first = sub.get(timeout=min(wait_seconds, 30.0))
            if first is not None:
                events = [first] + sub.drain()
    return {
        "events": [event.to_dict() for event in events],
        "dropped": sub.dropped if sub is not None else 0,
        "tailing": tailer is not None and tailer.is_running,
    }


# Entry point for running as module
if __name__ == "__main__":
    mcp.run()
