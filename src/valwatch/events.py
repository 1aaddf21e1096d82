"""Gameplay events recognised in ShooterGame.log.

classify() turns a single log line into at most one event. Each detector
checks a marker substring first and only then tries to pull a payload out of
the line; a line whose payload can't be extracted yields no event.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

ROUND_ENDED_MARKER = "AShooterGameState::OnRoundEnded for round"
MATCH_ENDED_MARKER = "Match Ended: Completion State"
WINNING_TEAM_MARKER = "Winning Team: '"
POST_DEATH_MARKER = "_PostDeath_PC"
BOMB_BUFF_MARKER = "BombInteractionBuff_C"
EFFECT_ADDED_MARKER = "InternalOnActiveGameplayEffectAdded "
GAMEPLAY_STARTED_MARKER = "Gameplay started at local time 0."

# Round numbers are unsigned 32-bit in the game log
MAX_ROUND_NUMBER = 2**32 - 1


@dataclass(frozen=True)
class RoundEnded:
    round_number: int
    type = "round_ended"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "round": self.round_number}


@dataclass(frozen=True)
class MatchEnded:
    winning_team: str
    type = "match_ended"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "winning_team": self.winning_team}


@dataclass(frozen=True)
class PlayerDied:
    type = "player_died"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class BombInteraction:
    agent_id: str
    type = "bomb_interaction"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "agent": self.agent_id}


@dataclass(frozen=True)
class GameplayStarted:
    type = "gameplay_started"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}


LogEvent = Union[RoundEnded, MatchEnded, PlayerDied, BombInteraction, GameplayStarted]


def _between(line: str, start: str, end: str) -> Optional[str]:
    """Text after the first `start` up to the next `end`, or None."""
    idx = line.find(start)
    if idx == -1:
        return None
    rest = line[idx + len(start):]
    stop = rest.find(end)
    return rest if stop == -1 else rest[:stop]


def _round_ended(line: str) -> Optional[LogEvent]:
    text = _between(line, "round '", "'")
    if text is None or not (text.isascii() and text.isdigit()):
        return None
    number = int(text)
    if number > MAX_ROUND_NUMBER:
        return None
    return RoundEnded(round_number=number)


def _match_ended(line: str) -> Optional[LogEvent]:
    if "Winning Team:" not in line:
        return MatchEnded(winning_team="unknown")
    team = _between(line, WINNING_TEAM_MARKER, "'")
    if team is None:
        return None
    return MatchEnded(winning_team=team)


def _is_player_death(line: str) -> bool:
    return (
        POST_DEATH_MARKER in line
        and "AcknowledgePawn" in line
        and "PrevPawn" not in line
    )


def _player_died(line: str) -> Optional[LogEvent]:
    if "ClientRestart_Implementation" not in line:
        return None
    return PlayerDied()


def _bomb_interaction(line: str) -> Optional[LogEvent]:
    agent = _between(line, EFFECT_ADDED_MARKER, "_")
    if not agent:
        return None
    return BombInteraction(agent_id=agent)


# (matches, extract) pairs. The first detector whose marker matches owns the
# line, even if its payload turns out to be unreadable.
DETECTORS: list[tuple[Callable[[str], bool], Callable[[str], Optional[LogEvent]]]] = [
    (lambda line: ROUND_ENDED_MARKER in line, _round_ended),
    (lambda line: MATCH_ENDED_MARKER in line, _match_ended),
    (_is_player_death, _player_died),
    (lambda line: BOMB_BUFF_MARKER in line, _bomb_interaction),
    (lambda line: GAMEPLAY_STARTED_MARKER in line, lambda line: GameplayStarted()),
]


def classify(line: str) -> Optional[LogEvent]:
    """Classify one log line.

    Args:
        line: A log line, with or without its trailing newline.

    Returns:
        The event the line describes, or None.
    """
    for matches, extract in DETECTORS:
        if matches(line):
            return extract(line)
    return None
