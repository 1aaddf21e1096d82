"""Local handshake, token claim decoding and the shared session holder.

The Riot Client exposes an entitlements endpoint on localhost that hands out
the bearer token and entitlements JWT for the signed-in player. The access
token carries the player's region somewhere in its claims; where exactly has
changed over time, so several locations are probed in order.
"""

import base64
import binascii
import dataclasses
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests
import urllib3

from valwatch.errors import AuthFailed, TransportError
from valwatch.lockfile import LocalCredentials, read_lockfile
from valwatch.routing import local_base

logger = logging.getLogger(__name__)

LOCAL_USERNAME = "riot"
TOKEN_PATH = "/entitlements/v1/token"
DEFAULT_SHARD = "eu"
DEFAULT_TIMEOUT = 10.0

# Region code -> shard. Unknown codes pass through unchanged.
REGION_TO_SHARD = {
    "euw": "eu",
    "eune": "eu",
    "eu": "eu",
    "tr": "eu",
    "ru": "eu",
    "na": "na",
    "us": "na",
    "br": "na",
    "latam": "na",
    "lan": "na",
    "las": "na",
    "ap": "ap",
    "kr": "ap",
    "jp": "ap",
    "oce": "ap",
    "sea": "ap",
}

# Claim locations tried in order; the first string value wins.
REGION_CLAIM_PATHS: list[tuple[str, ...]] = [
    ("acct", "country"),
    ("region",),
    ("shard",),
]


@dataclass(frozen=True)
class Session:
    """Credentials and routing for the signed-in player."""

    access_token: str
    entitlements_token: str
    player_id: str
    shard: str
    region: str

    def __repr__(self) -> str:
        return (
            f"Session(player_id={self.player_id!r}, shard={self.shard!r}, "
            f"region={self.region!r})"
        )


def map_region_to_shard(region: str) -> str:
    """Map a region code to its shard, passing unknown codes through."""
    code = region.strip().lower()
    return REGION_TO_SHARD.get(code, code)


def _lookup(claims: dict[str, Any], path: tuple[str, ...]) -> Optional[str]:
    node: Any = claims
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if isinstance(node, str) and node.strip():
        return node
    return None


def decode_claims(access_token: str) -> dict[str, Any]:
    """Decode the payload segment of a JWT without verifying it.

    Raises:
        AuthFailed: "invalid token" if there is no payload segment,
            "decode failed" if base64 or JSON decoding fails.
    """
    parts = access_token.split(".")
    if len(parts) < 2:
        raise AuthFailed("invalid token")

    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)

    try:
        raw = base64.urlsafe_b64decode(padded)
        claims = json.loads(raw)
    except (binascii.Error, ValueError):
        raise AuthFailed("decode failed") from None

    if not isinstance(claims, dict):
        raise AuthFailed("decode failed")
    return claims


def resolve_routing(access_token: str) -> tuple[str, str]:
    """Resolve (shard, region) from the access token claims.

    Falls back to DEFAULT_SHARD when no claim location holds a region.
    Shard and region resolve to the same code.
    """
    claims = decode_claims(access_token)

    for path in REGION_CLAIM_PATHS:
        value = _lookup(claims, path)
        if value is not None:
            shard = map_region_to_shard(value)
            logger.debug(f"Region claim {'.'.join(path)}={value!r} -> shard {shard!r}")
            return shard, shard

    logger.warning(f"No region claim in access token, defaulting to {DEFAULT_SHARD!r}")
    return DEFAULT_SHARD, DEFAULT_SHARD


def authenticate(
    http: requests.Session,
    credentials: LocalCredentials,
    timeout: float = DEFAULT_TIMEOUT,
) -> Session:
    """Exchange lockfile credentials for a bearer session.

    Raises:
        TransportError: The local endpoint could not be reached.
        AuthFailed: Bad status, unparsable body, a missing field, or an
            undecodable access token.
    """
    # The local API serves a self-signed certificate
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    url = f"{local_base(credentials)}{TOKEN_PATH}"
    logger.debug(f"Requesting entitlements from {url}")

    try:
        response = http.get(
            url,
            auth=(LOCAL_USERNAME, credentials.password),
            timeout=timeout,
            verify=False,
        )
    except requests.RequestException as e:
        raise TransportError(f"local handshake failed: {e}") from e

    if not response.ok:
        raise AuthFailed(f"status {response.status_code}")

    try:
        body = response.json()
    except ValueError:
        raise AuthFailed("response is not JSON") from None
    if not isinstance(body, dict):
        raise AuthFailed("response is not a JSON object")

    fields = {}
    for key in ("accessToken", "token", "subject"):
        value = body.get(key)
        if not isinstance(value, str) or not value:
            raise AuthFailed(f"missing {key}")
        fields[key] = value

    shard, region = resolve_routing(fields["accessToken"])

    session = Session(
        access_token=fields["accessToken"],
        entitlements_token=fields["token"],
        player_id=fields["subject"],
        shard=shard,
        region=region,
    )
    logger.info(f"Authenticated player {session.player_id} (shard={shard}, region={region})")
    return session


class SessionManager:
    """Owns the lockfile credentials and the current session.

    Readers call snapshot() from any thread. Writers replace the whole
    session value under the lock, so a reader never sees a mix of old and
    new fields.

    Example:
        manager = SessionManager.connect()
        session = manager.snapshot()
        print(session.shard, session.region)
    """

    def __init__(
        self,
        credentials: LocalCredentials,
        session: Session,
        http: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        authenticator: Callable[..., Session] = authenticate,
    ) -> None:
        self._credentials = credentials
        self._session = session
        self._http = http or requests.Session()
        self._timeout = timeout
        self._authenticator = authenticator
        self._lock = threading.Lock()

    @classmethod
    def connect(
        cls,
        http: Optional[requests.Session] = None,
        credentials: Optional[LocalCredentials] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "SessionManager":
        """Read the lockfile (unless given credentials) and authenticate."""
        if credentials is None:
            credentials = read_lockfile()
        http = http or requests.Session()
        session = authenticate(http, credentials, timeout=timeout)
        return cls(credentials, session, http=http, timeout=timeout)

    @property
    def credentials(self) -> LocalCredentials:
        return self._credentials

    @property
    def http(self) -> requests.Session:
        return self._http

    @property
    def player_id(self) -> str:
        return self.snapshot().player_id

    def snapshot(self) -> Session:
        """Return a copy of the current session."""
        with self._lock:
            return dataclasses.replace(self._session)

    def replace(self, session: Session) -> None:
        """Swap in a new session value."""
        with self._lock:
            self._session = session
        logger.debug(f"Session replaced: {session!r}")

    def reauthenticate(self) -> Session:
        """Run the local handshake again and swap in the result.

        The previous session stays in place if the handshake fails.
        """
        session = self._authenticator(self._http, self._credentials, timeout=self._timeout)
        self.replace(session)
        return session
