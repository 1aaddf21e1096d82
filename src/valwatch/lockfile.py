"""Riot Client lockfile discovery and parsing.

The Riot Client writes a one-line lockfile while it runs:

    Riot Client:12345:54321:s3cr3t:https

Fields are name, pid, port, password and protocol. Only the last three are
needed to reach the local control API.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from valwatch.errors import LockfileMalformed, LockfileNotFound

logger = logging.getLogger(__name__)

LOCKFILE_ENV = "RIOT_LOCKFILE_PATH"
KNOWN_TRANSPORTS = ("http", "https")


@dataclass(frozen=True)
class LocalCredentials:
    """Connection secrets for the local control API."""

    port: int
    password: str
    transport: str

    def __repr__(self) -> str:
        # Keep the password out of logs
        return f"LocalCredentials(port={self.port}, transport={self.transport!r})"


def candidate_paths() -> list[Path]:
    """Ordered list of places the lockfile may live."""
    paths: list[Path] = []

    env_path = os.environ.get(LOCKFILE_ENV)
    if env_path:
        paths.append(Path(env_path))

    paths.append(Path(r"C:\Riot Games\Riot Client\Config\lockfile"))

    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        paths.append(Path(local_appdata) / "Riot Games" / "Riot Client" / "Config" / "lockfile")

    return paths


def locate(paths: Optional[Iterable[Path]] = None) -> Path:
    """Return the first candidate path that exists.

    Raises:
        LockfileNotFound: If none of the candidates exist.
    """
    searched = list(paths) if paths is not None else candidate_paths()
    for path in searched:
        if path.exists():
            logger.debug(f"Found lockfile at {path}")
            return path
    raise LockfileNotFound(searched)


def parse(content: str) -> LocalCredentials:
    """Parse lockfile content into credentials.

    Raises:
        LockfileMalformed: Fewer than 5 fields, or a bad port/protocol.
    """
    parts = content.strip().split(":")
    if len(parts) < 5:
        raise LockfileMalformed(f"expected 5 fields, got {len(parts)}")

    try:
        port = int(parts[2])
    except ValueError:
        raise LockfileMalformed(f"invalid port {parts[2]!r}") from None
    if not 0 < port < 65536:
        raise LockfileMalformed(f"port out of range: {port}")

    transport = parts[4].strip().lower()
    if transport not in KNOWN_TRANSPORTS:
        raise LockfileMalformed(f"unknown protocol {parts[4]!r}")

    return LocalCredentials(port=port, password=parts[3], transport=transport)


def read_lockfile(path: Optional[Path] = None) -> LocalCredentials:
    """Locate (unless given a path), read and parse the lockfile."""
    if path is None:
        path = locate()

    try:
        content = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise LockfileNotFound([Path(path)]) from None
    except OSError as e:
        raise LockfileMalformed(f"unreadable: {e}") from e

    credentials = parse(content)
    logger.info(f"Read lockfile: port {credentials.port} over {credentials.transport}")
    return credentials
