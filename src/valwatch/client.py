"""HTTP client for the local control API and the PD/GLZ backend clusters.

Wraps a SessionManager: every remote call reads a fresh session snapshot for
its base URL and headers, so a re-authentication is picked up by the next
request without any coordination.
"""

import logging
from typing import Any, Optional

import requests

from valwatch.auth import LOCAL_USERNAME, DEFAULT_TIMEOUT, Session, SessionManager
from valwatch.errors import ApiError, NotInMatch, TransportError
from valwatch.routing import local_base, lobby_base, profile_base

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_VERSION = "release-10.03.0"

# Base64 JSON describing a Windows PC client; the backend requires it verbatim.
CLIENT_PLATFORM = (
    "ew0KCSJwbGF0Zm9ybVR5cGUiOiAiUEMiLA0KCSJwbGF0Zm9ybU9TIjogIldpbmRvd3MiLA0KCSJw"
    "bGF0Zm9ybU9TVmVyc2lvbiI6ICIxMC4wLjE5MDQyLjEuMjU2LjY0Yml0IiwNCgkicGxhdGZvcm1D"
    "aGlwc2V0IjogIlVua25vd24iDQp9"
)

EXTERNAL_SESSIONS_PATH = "/product-session/v1/external-sessions"


def auth_headers(session: Session, client_version: str) -> dict[str, str]:
    """Headers required by the PD and GLZ clusters."""
    return {
        "Authorization": f"Bearer {session.access_token}",
        "X-Riot-Entitlements-JWT": session.entitlements_token,
        "X-Riot-ClientVersion": client_version,
        "X-Riot-ClientPlatform": CLIENT_PLATFORM,
    }


def find_client_version(sessions: Any) -> Optional[str]:
    """First non-empty "version" among external sessions."""
    if not isinstance(sessions, dict):
        return None
    for entry in sessions.values():
        if isinstance(entry, dict):
            version = entry.get("version")
            if isinstance(version, str) and version:
                return version
    return None


class ValorantClient:
    """Accessors for the running client's local API and its backend clusters.

    Example:
        client = ValorantClient.connect()
        player = client.coregame_player()
        match = client.coregame_match(player["MatchID"])
    """

    def __init__(
        self,
        manager: SessionManager,
        client_version: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            manager: Authenticated session manager.
            client_version: X-Riot-ClientVersion header. Discovered from the
                           local API when not given.
            timeout: Per-request timeout in seconds.
        """
        self.manager = manager
        self.http = manager.http
        self.timeout = timeout
        self.client_version = client_version or self._discover_client_version()

    @classmethod
    def connect(
        cls,
        timeout: float = DEFAULT_TIMEOUT,
        client_version: Optional[str] = None,
    ) -> "ValorantClient":
        """Connect to the running VALORANT instance."""
        manager = SessionManager.connect(timeout=timeout)
        return cls(manager, client_version=client_version, timeout=timeout)

    # -- local control plane -------------------------------------------------

    def local_url(self) -> str:
        return local_base(self.manager.credentials)

    def _local_get(self, path: str) -> Any:
        credentials = self.manager.credentials
        url = f"{local_base(credentials)}{path}"
        try:
            response = self.http.get(
                url,
                auth=(LOCAL_USERNAME, credentials.password),
                timeout=self.timeout,
                verify=False,
            )
        except requests.RequestException as e:
            raise TransportError(f"GET {path} failed: {e}") from e
        return self._json(response, path)

    def _discover_client_version(self) -> str:
        try:
            version = find_client_version(self._local_get(EXTERNAL_SESSIONS_PATH))
        except (TransportError, ApiError) as e:
            logger.warning(f"Client version lookup failed: {e}")
            version = None
        if not version:
            logger.info(f"Using fallback client version {DEFAULT_CLIENT_VERSION}")
            return DEFAULT_CLIENT_VERSION
        logger.info(f"Client version: {version}")
        return version

    def external_sessions(self) -> dict[str, Any]:
        """Raw product sessions reported by the Riot Client."""
        return self._local_get(EXTERNAL_SESSIONS_PATH)

    # -- remote clusters -----------------------------------------------------

    def pd_url(self) -> str:
        return profile_base(self.manager.snapshot())

    def glz_url(self) -> str:
        return lobby_base(self.manager.snapshot())

    def headers(self) -> dict[str, str]:
        return auth_headers(self.manager.snapshot(), self.client_version)

    def _json(self, response: requests.Response, path: str) -> Any:
        if not response.ok:
            raise ApiError(response.status_code, path)
        try:
            return response.json()
        except ValueError:
            raise ApiError(response.status_code, f"{path}: invalid JSON") from None

    def _request(
        self,
        method: str,
        base: str,
        path: str,
        body: Any = None,
        not_found_is_not_in_match: bool = False,
    ) -> Any:
        url = f"{base}{path}"
        logger.debug(f"{method} {url}")
        try:
            response = self.http.request(
                method,
                url,
                headers=self.headers(),
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if not_found_is_not_in_match and response.status_code == 404:
            raise NotInMatch()
        return self._json(response, path)

    def raw_get_pd(self, path: str) -> Any:
        """GET against the player data cluster."""
        return self._request("GET", self.pd_url(), path)

    def raw_get_glz(self, path: str) -> Any:
        """GET against the game lobby zone cluster."""
        return self._request("GET", self.glz_url(), path)

    def raw_put_pd(self, path: str, body: Any) -> Any:
        """PUT a JSON body against the player data cluster."""
        return self._request("PUT", self.pd_url(), path, body=body)

    # -- pregame / coregame --------------------------------------------------

    def pregame_player(self, player_id: Optional[str] = None) -> dict[str, Any]:
        """Agent-select membership. Raises NotInMatch outside agent select."""
        player_id = player_id or self.manager.player_id
        return self._request(
            "GET", self.glz_url(), f"/pregame/v1/players/{player_id}",
            not_found_is_not_in_match=True,
        )

    def pregame_match(self, match_id: str) -> dict[str, Any]:
        return self.raw_get_glz(f"/pregame/v1/matches/{match_id}")

    def coregame_player(self, player_id: Optional[str] = None) -> dict[str, Any]:
        """Live match membership. Raises NotInMatch when not in a match."""
        player_id = player_id or self.manager.player_id
        return self._request(
            "GET", self.glz_url(), f"/core-game/v1/players/{player_id}",
            not_found_is_not_in_match=True,
        )

    def coregame_match(self, match_id: str) -> dict[str, Any]:
        return self.raw_get_glz(f"/core-game/v1/matches/{match_id}")

    def coregame_loadouts(self, match_id: str) -> dict[str, Any]:
        return self.raw_get_glz(f"/core-game/v1/matches/{match_id}/loadouts")

    def game_phase(self) -> str:
        """Current phase: pregame, ingame or menu."""
        for phase, check in (("pregame", self.pregame_player), ("ingame", self.coregame_player)):
            try:
                check()
                return phase
            except NotInMatch:
                continue
        return "menu"

    # -- player data ---------------------------------------------------------

    def match_history(
        self,
        player_id: Optional[str] = None,
        count: int = 20,
        queue: str = "competitive",
    ) -> list[dict[str, Any]]:
        """Recent matches, newest first."""
        player_id = player_id or self.manager.player_id
        data = self.raw_get_pd(
            f"/match-history/v1/history/{player_id}"
            f"?startIndex=0&endIndex={count}&queue={queue}"
        )
        history = data.get("History") if isinstance(data, dict) else None
        return history if isinstance(history, list) else []

    def match_details(self, match_id: str) -> dict[str, Any]:
        return self.raw_get_pd(f"/match-details/v1/matches/{match_id}")

    def mmr(self, player_id: Optional[str] = None) -> dict[str, Any]:
        player_id = player_id or self.manager.player_id
        return self.raw_get_pd(f"/mmr/v1/players/{player_id}")

    def leaderboard(self, season_id: str, start: int = 0, size: int = 50) -> dict[str, Any]:
        region = self.manager.snapshot().region
        return self.raw_get_pd(
            f"/mmr/v1/leaderboards/affinity/{region}/queue/competitive/season/{season_id}"
            f"?startIndex={start}&size={size}"
        )

    def resolve_names(self, player_ids: list[str]) -> list[dict[str, str]]:
        """Player ids -> [{"puuid", "name", "tag"}]."""
        entries = self.raw_put_pd("/name-service/v2/players", list(player_ids))
        return [
            {
                "puuid": entry.get("Subject", ""),
                "name": entry.get("GameName", ""),
                "tag": entry.get("TagLine", ""),
            }
            for entry in entries or []
            if isinstance(entry, dict)
        ]

    def lookup_player(self, name: str, tag: str) -> str:
        """Resolve "Name#Tag" to a player id.

        Raises:
            ApiError: 404 when no player matches.
        """
        entries = self.raw_put_pd("/name-service/v2/players", [f"{name}#{tag}"])
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            if (
                str(entry.get("GameName", "")).lower() == name.lower()
                and str(entry.get("TagLine", "")).lower() == tag.lower()
                and entry.get("Subject")
            ):
                return entry["Subject"]
        raise ApiError(404, "Player not found")
