"""Tests for licensegate/services/user_directory.py.

Local-file refreshes use real files under tmp_path; remote refreshes use
a MagicMock standing in for requests.Session, so no network is touched.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from conftest import FUTURE, PAST, TODAY, account_entry
from licensegate.models.account import Account
from licensegate.models.enums import CredentialErrorCode, RosterErrorCode
from licensegate.services.user_directory import UserDirectory, is_remote_source

ROSTER_URL = "https://example.invalid/users.json"


def _http_response(status=200, body=b"[]"):
    resp = MagicMock()
    resp.status_code = status
    resp.content = body
    return resp


def _remote_directory(logger, clock, session, **kwargs):
    return UserDirectory(
        source=ROSTER_URL,
        logger=logger,
        http_session=session,
        today_provider=clock,
        **kwargs,
    )


@pytest.fixture
def directory(logger, clock, roster_file):
    path = roster_file([
        account_entry("alice", "pw1"),
        account_entry("bob", "pw2", active=False),
        account_entry("carol", "pw3", expires=PAST),
        account_entry("dave", "pw4", expires=TODAY.isoformat()),
    ])
    d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
    assert d.refresh().success
    return d


# ---------------------------------------------------------------------------
# Source resolution
# ---------------------------------------------------------------------------


class TestSourceResolution:
    @pytest.mark.parametrize("source", ["http://x/y.json", "HTTPS://x/y.json", "  https://x  "])
    def test_urls_are_remote(self, source):
        assert is_remote_source(source)

    @pytest.mark.parametrize("source", ["C:\\data\\users.json", "/srv/users.json", "users.json", "ftp://x"])
    def test_everything_else_is_local(self, source):
        assert not is_remote_source(source)


# ---------------------------------------------------------------------------
# Local refresh
# ---------------------------------------------------------------------------


class TestLocalRefresh:
    def test_loads_roster(self, logger, clock, roster_file):
        d = UserDirectory(source=str(roster_file([account_entry()])), logger=logger, today_provider=clock)
        result = d.refresh()
        assert result.success
        assert result.account_count == 1
        assert d.has_roster
        assert d.lookup("alice").password == "pw1"

    def test_missing_file_fails(self, logger, tmp_path):
        d = UserDirectory(source=str(tmp_path / "nope.json"), logger=logger)
        result = d.refresh()
        assert not result.success
        assert result.error_code == RosterErrorCode.SOURCE_MISSING
        assert not d.has_roster

    def test_unparsable_file_fails(self, logger, tmp_path):
        path = tmp_path / "users.json"
        path.write_text("{not json", encoding="utf-8")
        result = UserDirectory(source=str(path), logger=logger).refresh()
        assert result.error_code == RosterErrorCode.PARSE_ERROR

    def test_wrong_shape_fails(self, logger, tmp_path):
        path = tmp_path / "users.json"
        path.write_text(json.dumps({"username": "alice"}), encoding="utf-8")
        result = UserDirectory(source=str(path), logger=logger).refresh()
        assert result.error_code == RosterErrorCode.PARSE_ERROR

    def test_empty_source_fails(self, logger):
        result = UserDirectory(source="", logger=logger).refresh()
        assert result.error_code == RosterErrorCode.SOURCE_MISSING

    def test_result_is_falsy_on_failure(self, logger):
        assert not UserDirectory(source="", logger=logger).refresh()

    def test_failed_refresh_keeps_last_known_good(self, logger, clock, roster_file, tmp_path):
        path = roster_file([account_entry()])
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
        assert d.refresh().success
        path.write_text("garbage", encoding="utf-8")
        assert not d.refresh().success
        assert d.lookup("alice") is not None

    def test_successful_refresh_replaces_wholesale(self, logger, clock, roster_file):
        path = roster_file([account_entry("alice"), account_entry("bob")])
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
        d.refresh()
        roster_file([account_entry("bob")])
        d.refresh()
        assert d.lookup("alice") is None
        assert d.lookup("bob") is not None

    def test_duplicate_usernames_keep_first(self, logger, clock, roster_file):
        path = roster_file([account_entry("Alice", "first"), account_entry("alice", "second")])
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
        assert d.refresh().account_count == 1
        assert d.lookup("ALICE").password == "first"

    def test_pascal_case_keys_accepted(self, logger, clock, roster_file):
        path = roster_file([{"Username": "alice", "Password": "pw1", "Active": True, "Expires": FUTURE}])
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
        assert d.refresh().success
        assert d.lookup("alice").active

    def test_upper_case_keys_accepted(self, logger, clock, roster_file):
        path = roster_file([{"USERNAME": "alice", "PASSWORD": "pw1", "ACTIVE": True, "EXPIRES": FUTURE}])
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
        assert d.refresh().success
        assert d.validate_credentials("alice", "pw1").success

    def test_byte_order_mark_ignored(self, logger, clock, tmp_path):
        path = tmp_path / "users.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps([account_entry()]).encode("utf-8"))
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)
        assert d.refresh().account_count == 1
        assert d.lookup("alice") is not None

    @pytest.mark.parametrize(
        "bad_entry",
        [
            {"username": "bob", "password": "x", "active": True},
            {"username": "bob", "password": None, "active": True, "expires": FUTURE},
            {"username": "bob", "password": "x", "active": True, "expires": "not-a-date"},
            "bob",
            None,
        ],
    )
    def test_invalid_entry_skipped_others_load(self, logger, clock, roster_file, bad_entry):
        path = roster_file([account_entry("alice", "pw1"), bad_entry, account_entry("carol")])
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)

        result = d.refresh()

        assert result.success
        assert result.account_count == 2
        assert d.lookup("bob") is None
        assert d.validate_credentials("alice", "pw1").success

    def test_null_body_is_empty_roster(self, logger, clock, tmp_path):
        path = tmp_path / "users.json"
        path.write_text("null", encoding="utf-8")
        d = UserDirectory(source=str(path), logger=logger, today_provider=clock)

        result = d.refresh()

        assert result.success
        assert result.account_count == 0
        assert d.has_roster
        assert d.lookup("alice") is None


# ---------------------------------------------------------------------------
# Remote refresh
# ---------------------------------------------------------------------------


class TestRemoteRefresh:
    def test_success(self, logger, clock):
        session = MagicMock()
        session.get.return_value = _http_response(body=json.dumps([account_entry()]).encode())
        d = _remote_directory(logger, clock, session)
        assert d.refresh().success
        assert d.lookup("alice") is not None

    def test_sends_client_id_and_timeout(self, logger, clock):
        session = MagicMock()
        session.get.return_value = _http_response()
        d = _remote_directory(logger, clock, session, timeout=5.0, client_id="Gate/9")
        d.refresh()
        _, kwargs = session.get.call_args
        assert kwargs["timeout"] == 5.0
        assert kwargs["headers"]["User-Agent"] == "Gate/9"
        assert "Authorization" not in kwargs["headers"]

    def test_token_read_from_environment(self, logger, clock, monkeypatch):
        monkeypatch.setenv("ROSTER_TOKEN_TEST", "s3cret")
        session = MagicMock()
        session.get.return_value = _http_response()
        d = _remote_directory(logger, clock, session, token_env_var="ROSTER_TOKEN_TEST")
        d.refresh()
        _, kwargs = session.get.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer s3cret"

    def test_unset_token_variable_sends_no_header(self, logger, clock, monkeypatch):
        monkeypatch.delenv("ROSTER_TOKEN_TEST", raising=False)
        session = MagicMock()
        session.get.return_value = _http_response()
        d = _remote_directory(logger, clock, session, token_env_var="ROSTER_TOKEN_TEST")
        d.refresh()
        _, kwargs = session.get.call_args
        assert "Authorization" not in kwargs["headers"]

    @pytest.mark.parametrize("status", [301, 401, 404, 500])
    def test_non_success_status_fails(self, logger, clock, status):
        session = MagicMock()
        session.get.return_value = _http_response(status=status)
        result = _remote_directory(logger, clock, session).refresh()
        assert not result.success
        assert result.error_code == RosterErrorCode.HTTP_ERROR

    def test_timeout_is_not_raised(self, logger, clock):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        result = _remote_directory(logger, clock, session).refresh()
        assert result.error_code == RosterErrorCode.TIMEOUT

    def test_connection_error_is_not_raised(self, logger, clock):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("offline")
        result = _remote_directory(logger, clock, session).refresh()
        assert result.error_code == RosterErrorCode.NETWORK_ERROR

    def test_bad_body_fails(self, logger, clock):
        session = MagicMock()
        session.get.return_value = _http_response(body=b"<html>")
        result = _remote_directory(logger, clock, session).refresh()
        assert result.error_code == RosterErrorCode.PARSE_ERROR


# ---------------------------------------------------------------------------
# Lookup and credentials
# ---------------------------------------------------------------------------


class TestLookup:
    def test_case_insensitive(self, directory):
        assert directory.lookup("ALICE").username == "alice"

    def test_unknown(self, directory):
        assert directory.lookup("mallory") is None

    def test_empty(self, directory):
        assert directory.lookup("") is None

    def test_empty_before_first_refresh(self, logger):
        assert UserDirectory(source="x.json", logger=logger).lookup("alice") is None


class TestValidateCredentials:
    def test_success(self, directory):
        result = directory.validate_credentials("alice", "pw1")
        assert result.success
        assert result.account.username == "alice"
        assert result.error_code is None

    def test_username_case_ignored(self, directory):
        assert directory.validate_credentials("Alice", "pw1").success

    @pytest.mark.parametrize("username,password", [("", "pw1"), ("alice", ""), ("   ", "pw1"), ("alice", "  ")])
    def test_missing_input(self, directory, username, password):
        result = directory.validate_credentials(username, password)
        assert result.error_code == CredentialErrorCode.MISSING_INPUT
        assert result.error_message == "Enter username and password."

    def test_unknown_user(self, directory):
        result = directory.validate_credentials("mallory", "pw1")
        assert result.error_code == CredentialErrorCode.UNKNOWN_USER
        assert result.error_message == "Unknown user."

    def test_wrong_password(self, directory):
        result = directory.validate_credentials("alice", "PW1")
        assert result.error_code == CredentialErrorCode.WRONG_PASSWORD
        assert result.error_message == "Invalid password."
        assert result.account is None

    def test_inactive_with_correct_password(self, directory):
        result = directory.validate_credentials("bob", "pw2")
        assert result.error_code == CredentialErrorCode.INACTIVE

    def test_password_checked_before_active_flag(self, directory):
        assert directory.validate_credentials("bob", "wrong").error_code == CredentialErrorCode.WRONG_PASSWORD

    def test_expired_with_correct_password(self, directory):
        result = directory.validate_credentials("carol", "pw3")
        assert result.error_code == CredentialErrorCode.EXPIRED
        assert result.error_message == "Account expired."

    def test_expiring_today_is_still_valid(self, directory):
        assert directory.validate_credentials("dave", "pw4").success


class TestIsAuthorized:
    def test_active_future(self, directory):
        assert directory.is_authorized(directory.lookup("alice"))

    def test_inactive(self, directory):
        assert not directory.is_authorized(directory.lookup("bob"))

    def test_expired(self, directory):
        assert not directory.is_authorized(directory.lookup("carol"))


class TestAccountModel:
    def test_date_only_expiry_is_midnight_utc(self):
        account = Account(username="a", password="p", active=True, expires="2026-12-31")
        assert account.expires == datetime(2026, 12, 31, tzinfo=timezone.utc)

    def test_naive_datetime_treated_as_utc(self):
        account = Account(username="a", password="p", active=True, expires="2026-12-31T23:00:00")
        assert account.expires_on.isoformat() == "2026-12-31"

    def test_offset_converted_to_utc_date(self):
        account = Account(username="a", password="p", active=True, expires="2026-12-31T23:00:00-05:00")
        assert account.expires_on.isoformat() == "2027-01-01"

    def test_password_not_in_repr(self):
        assert "pw-secret" not in repr(Account(username="a", password="pw-secret", active=True, expires=FUTURE))

    def test_keys_matched_in_any_case(self):
        account = Account.model_validate({"UserName": "a", "PASSWORD": "p", "aCtIvE": True, "Expires": FUTURE})
        assert (account.username, account.password, account.active) == ("a", "p", True)
