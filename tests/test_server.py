"""Tests for the MCP tool functions."""

import time
from unittest.mock import Mock

import pytest

from valwatch import server
from valwatch.auth import Session
from valwatch.errors import LockfileNotFound, NotInMatch


SESSION = Session("access", "entitlements", "me-uuid", "eu", "eu")


@pytest.fixture
def fake_client(monkeypatch):
    client = Mock()
    client.manager.snapshot.return_value = SESSION
    client.manager.player_id = "me-uuid"
    monkeypatch.setattr(server, "_client", client)
    return client


@pytest.fixture
def watching(tmp_path, monkeypatch):
    """Point the server's tailer at a temporary log and clean up after."""
    log_file = tmp_path / "ShooterGame.log"
    log_file.write_text("old line\n")
    monkeypatch.setenv("VALORANT_LOG_PATH", str(log_file))
    yield log_file
    server.stop_watching()


class TestTools:
    """Tests for the query tools."""

    def test_get_auth(self, fake_client):
        fake_client.resolve_names.return_value = [{"puuid": "me-uuid", "name": "Alpha", "tag": "EUW"}]

        assert server.get_auth() == {
            "puuid": "me-uuid",
            "name": "Alpha",
            "tag": "EUW",
            "shard": "eu",
            "region": "eu",
        }

    def test_coregame_match(self, fake_client):
        fake_client.coregame_player.return_value = {"MatchID": "m1"}
        fake_client.coregame_match.return_value = {"MatchID": "m1", "MapID": "/Game/Maps/Ascent"}

        assert server.get_coregame_match()["MapID"] == "/Game/Maps/Ascent"
        fake_client.coregame_match.assert_called_once_with("m1")

    def test_coregame_match_not_in_match(self, fake_client):
        fake_client.coregame_player.side_effect = NotInMatch()

        assert server.get_coregame_match() == {"error": "Not in match"}

    def test_mmr_me(self, fake_client):
        fake_client.mmr.return_value = {"Subject": "me-uuid"}

        server.get_mmr("me")

        fake_client.mmr.assert_called_once_with("me-uuid")

    def test_match_history_count_clamped(self, fake_client):
        fake_client.match_history.return_value = []

        server.get_match_history(count=500)

        fake_client.match_history.assert_called_once_with(count=100)

    def test_status_when_game_not_running(self, monkeypatch):
        monkeypatch.setattr(server, "_client", None)
        monkeypatch.setattr(
            server.ValorantClient, "connect", Mock(side_effect=LockfileNotFound())
        )

        status = server.get_status()

        assert status["running"] is False
        assert "lockfile" in status["error"]


class TestLogEvents:
    """Tests for get_log_events()."""

    def test_returns_new_events_only(self, watching):
        first = server.get_log_events()
        assert first["events"] == []
        assert first["tailing"] is True

        with open(watching, "a", encoding="utf-8") as f:
            f.write("AShooterGameState::OnRoundEnded for round '3'\n")

        result = server.get_log_events(wait_seconds=2.0)
        time.sleep(0.05)

        assert result["events"] == [{"type": "round_ended", "round": 3}]
        assert server.get_log_events()["events"] == []

    def test_stop_watching_twice(self, watching):
        server.start_watching()
        server.stop_watching()
        server.stop_watching()

        assert server.tailer is None

    def test_restart_releases_stopped_tailer(self, watching, monkeypatch):
        server.start_watching()
        old = server.tailer
        monkeypatch.setattr(old, "stop", Mock(wraps=old.stop))

        old._file.close()
        old.join(timeout=2.0)
        assert not old.is_running

        server.start_watching()

        old.stop.assert_called_once()
        assert server.tailer is not old
        assert server.tailer.is_running
