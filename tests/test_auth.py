"""Tests for lockfile parsing, token claim decoding and the session holder."""

import base64
import json
import threading
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests
import urllib3

from valwatch.auth import (
    Session,
    SessionManager,
    authenticate,
    decode_claims,
    map_region_to_shard,
    resolve_routing,
)
from valwatch.errors import AuthFailed, LockfileMalformed, LockfileNotFound, TransportError
from valwatch.lockfile import LocalCredentials, locate, parse, read_lockfile


def make_token(claims) -> str:
    """Unsigned JWT-shaped token carrying the given claims."""
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
    return f"eyJhbGciOiJSUzI1NiJ9.{payload}.signature"


def make_response(status: int = 200, body=None) -> Mock:
    response = Mock()
    response.status_code = status
    response.ok = 200 <= status < 300
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


CREDENTIALS = LocalCredentials(port=54321, password="s3cr3t", transport="https")


class TestLockfileParse:
    """Tests for parse()."""

    def test_fields_at_fixed_indices(self):
        """Port, password and protocol come from fields 2, 3 and 4."""
        creds = parse("Riot Client:1234:54321:s3cr3t:https")

        assert creds == LocalCredentials(port=54321, password="s3cr3t", transport="https")

    def test_trailing_newline_ignored(self):
        creds = parse("Riot Client:1234:6000:pw:http\n")

        assert creds.port == 6000
        assert creds.transport == "http"

    @pytest.mark.parametrize("content", ["", "a:b:c:d", "Riot Client:1:2:3"])
    def test_too_few_fields(self, content):
        with pytest.raises(LockfileMalformed):
            parse(content)

    def test_non_integer_port(self):
        with pytest.raises(LockfileMalformed):
            parse("Riot Client:1234:port:pw:https")

    def test_port_out_of_range(self):
        with pytest.raises(LockfileMalformed):
            parse("Riot Client:1234:70000:pw:https")

    def test_unknown_protocol(self):
        with pytest.raises(LockfileMalformed):
            parse("Riot Client:1234:6000:pw:gopher")

    def test_password_not_in_repr(self):
        assert "s3cr3t" not in repr(parse("Riot Client:1:2:s3cr3t:https"))


class TestLockfileLocate:
    """Tests for locate() and read_lockfile()."""

    def test_first_existing_candidate_wins(self, tmp_path):
        missing = tmp_path / "missing"
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.write_text("x")
        second.write_text("x")

        assert locate([missing, first, second]) == first

    def test_none_exist(self, tmp_path):
        with pytest.raises(LockfileNotFound) as exc_info:
            locate([tmp_path / "a", tmp_path / "b"])

        assert len(exc_info.value.searched) == 2

    def test_env_override(self, tmp_path, monkeypatch):
        lockfile = tmp_path / "lockfile"
        lockfile.write_text("Riot Client:1:7777:pw:https")
        monkeypatch.setenv("RIOT_LOCKFILE_PATH", str(lockfile))

        assert read_lockfile().port == 7777

    def test_read_missing_path(self, tmp_path):
        with pytest.raises(LockfileNotFound):
            read_lockfile(Path(tmp_path / "gone"))


class TestResolveRouting:
    """Tests for region/shard resolution from token claims."""

    def test_nested_country_claim(self):
        assert resolve_routing(make_token({"acct": {"country": "na"}})) == ("na", "na")

    def test_flat_region_mapped_through_table(self):
        assert resolve_routing(make_token({"region": "tr"})) == ("eu", "eu")

    def test_flat_shard_field(self):
        assert resolve_routing(make_token({"shard": "kr"})) == ("ap", "ap")

    def test_nested_claim_checked_first(self):
        token = make_token({"acct": {"country": "br"}, "region": "euw"})

        assert resolve_routing(token) == ("na", "na")

    def test_no_recognisable_field_defaults_to_eu(self):
        assert resolve_routing(make_token({"sub": "abc", "acct": {"tag": 1}})) == ("eu", "eu")

    def test_non_string_claim_skipped(self):
        assert resolve_routing(make_token({"acct": {"country": 5}, "region": "sea"})) == ("ap", "ap")

    def test_unknown_code_passes_through(self):
        assert resolve_routing(make_token({"region": "PBE"})) == ("pbe", "pbe")

    def test_case_insensitive_mapping(self):
        assert map_region_to_shard("EUW") == "eu"

    def test_single_segment_token(self):
        with pytest.raises(AuthFailed) as exc_info:
            resolve_routing("notajwt")

        assert exc_info.value.reason == "invalid token"

    def test_bad_base64(self):
        with pytest.raises(AuthFailed) as exc_info:
            resolve_routing("a.!!!!.c")

        assert exc_info.value.reason == "decode failed"

    def test_payload_not_json(self):
        payload = base64.urlsafe_b64encode(b"not json").decode()

        with pytest.raises(AuthFailed) as exc_info:
            decode_claims(f"a.{payload}.c")

        assert exc_info.value.reason == "decode failed"

    def test_payload_json_array(self):
        with pytest.raises(AuthFailed):
            decode_claims(make_token([1, 2, 3]))

    def test_two_segment_token_accepted(self):
        token = make_token({"region": "na"}).rsplit(".", 1)[0]

        assert resolve_routing(token) == ("na", "na")


class TestAuthenticate:
    """Tests for the local entitlements handshake."""

    def test_builds_session(self):
        http = Mock()
        http.get.return_value = make_response(body={
            "accessToken": make_token({"acct": {"country": "euw"}}),
            "token": "entitlements-jwt",
            "subject": "player-uuid",
        })

        session = authenticate(http, CREDENTIALS)

        assert session.player_id == "player-uuid"
        assert session.entitlements_token == "entitlements-jwt"
        assert (session.shard, session.region) == ("eu", "eu")

        args, kwargs = http.get.call_args
        assert args[0] == "https://127.0.0.1:54321/entitlements/v1/token"
        assert kwargs["auth"] == ("riot", "s3cr3t")
        assert kwargs["verify"] is False

    @pytest.mark.parametrize("missing", ["accessToken", "token", "subject"])
    def test_missing_field(self, missing):
        body = {"accessToken": make_token({}), "token": "t", "subject": "s"}
        del body[missing]
        http = Mock()
        http.get.return_value = make_response(body=body)

        with pytest.raises(AuthFailed) as exc_info:
            authenticate(http, CREDENTIALS)

        assert missing in exc_info.value.reason

    def test_silences_self_signed_certificate_warning(self, monkeypatch):
        disable = Mock()
        monkeypatch.setattr(urllib3, "disable_warnings", disable)
        http = Mock()
        http.get.return_value = make_response(body={
            "accessToken": make_token({}), "token": "t", "subject": "s",
        })

        authenticate(http, CREDENTIALS)

        disable.assert_called_once_with(urllib3.exceptions.InsecureRequestWarning)

    def test_transport_error(self):
        http = Mock()
        http.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TransportError):
            authenticate(http, CREDENTIALS)

    def test_error_status(self):
        http = Mock()
        http.get.return_value = make_response(status=403, body={})

        with pytest.raises(AuthFailed):
            authenticate(http, CREDENTIALS)

    def test_non_json_body(self):
        http = Mock()
        http.get.return_value = make_response(body=ValueError("no json"))

        with pytest.raises(AuthFailed):
            authenticate(http, CREDENTIALS)


class TestSessionManager:
    """Tests for snapshot/replace semantics."""

    def _session(self, n: int) -> Session:
        tag = str(n)
        return Session(
            access_token=tag, entitlements_token=tag, player_id=tag, shard=tag, region=tag
        )

    def test_snapshot_is_a_copy(self):
        session = self._session(1)
        manager = SessionManager(CREDENTIALS, session, http=Mock())

        snap = manager.snapshot()

        assert snap == session
        assert snap is not session

    def test_snapshot_is_immutable(self):
        manager = SessionManager(CREDENTIALS, self._session(1), http=Mock())

        with pytest.raises(AttributeError):
            manager.snapshot().shard = "na"

    def test_reauthenticate_swaps_whole_session(self):
        authenticator = Mock(return_value=self._session(2))
        manager = SessionManager(
            CREDENTIALS, self._session(1), http=Mock(), authenticator=authenticator
        )

        manager.reauthenticate()

        assert manager.snapshot() == self._session(2)

    def test_failed_reauthenticate_keeps_session(self):
        authenticator = Mock(side_effect=AuthFailed("nope"))
        manager = SessionManager(
            CREDENTIALS, self._session(1), http=Mock(), authenticator=authenticator
        )

        with pytest.raises(AuthFailed):
            manager.reauthenticate()

        assert manager.snapshot() == self._session(1)

    def test_concurrent_readers_never_see_torn_session(self):
        """Every snapshot has all five fields from the same write."""
        manager = SessionManager(CREDENTIALS, self._session(0), http=Mock())
        torn = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                s = manager.snapshot()
                if len({s.access_token, s.entitlements_token, s.player_id, s.shard, s.region}) != 1:
                    torn.append(s)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        for n in range(1, 2000):
            manager.replace(self._session(n))
        done.set()
        for t in readers:
            t.join(timeout=5)

        assert torn == []
        assert manager.player_id == "1999"

    def test_connect_uses_given_credentials(self):
        http = Mock()
        http.get.return_value = make_response(body={
            "accessToken": make_token({"region": "na"}),
            "token": "t",
            "subject": "me",
        })

        manager = SessionManager.connect(http=http, credentials=CREDENTIALS)

        assert manager.credentials == CREDENTIALS
        assert manager.snapshot().shard == "na"
