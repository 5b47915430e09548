from unittest.mock import MagicMock

import pytest

from src.mail_llm_filter.auth import DeviceCodeAuthRequired, GraphAuthenticator


def _authenticator(tmp_path, username=None, interactive=True):
    settings = MagicMock()
    settings.outlook_account_username = username
    settings.azure_client_id = "client-id"
    settings.azure_tenant_id = "consumers"
    return GraphAuthenticator(settings, interactive=interactive, cache_file=tmp_path / "cache.json")


ACCOUNTS = [
    {"username": "first@example.com"},
    {"username": "second@example.com"},
]


def test_select_account_defaults_to_first_when_no_preferred_username(tmp_path) -> None:
    """Return the first cached account when no preference is configured."""

    auth = _authenticator(tmp_path)
    assert auth._select_account(ACCOUNTS) == ACCOUNTS[0]


def test_select_account_matches_preferred_username_case_insensitive(tmp_path) -> None:
    """Select the cached account matching the preferred username."""

    auth = _authenticator(tmp_path, username="Second@Example.com")
    assert auth._select_account(ACCOUNTS) == ACCOUNTS[1]


def test_select_account_raises_when_preferred_username_missing(tmp_path) -> None:
    """Raise a clear error when the preferred username is not in cache."""

    auth = _authenticator(tmp_path, username="missing@example.com")
    with pytest.raises(ValueError, match="OUTLOOK_ACCOUNT_USERNAME"):
        auth._select_account(ACCOUNTS)


def test_select_account_returns_none_without_accounts(tmp_path) -> None:
    assert _authenticator(tmp_path)._select_account([]) is None


def test_missing_client_id_is_reported(tmp_path) -> None:
    auth = _authenticator(tmp_path)
    auth.settings.azure_client_id = ""
    with pytest.raises(RuntimeError, match="AZURE_CLIENT_ID"):
        auth.get_access_token()


def test_cached_token_is_used_silently(tmp_path) -> None:
    auth = _authenticator(tmp_path)
    app = MagicMock()
    app.get_accounts.return_value = ACCOUNTS
    app.acquire_token_silent.return_value = {"access_token": "tok"}
    app.token_cache.has_state_changed = False
    auth._app = app

    assert auth.get_auth_headers()["Authorization"] == "Bearer tok"
    app.initiate_device_flow.assert_not_called()


def test_non_interactive_device_flow_raises(tmp_path) -> None:
    """Web callers get the device-code details instead of a console prompt."""

    auth = _authenticator(tmp_path, interactive=False)
    app = MagicMock()
    app.get_accounts.return_value = []
    app.initiate_device_flow.return_value = {
        "user_code": "ABC123",
        "verification_uri": "https://microsoft.com/devicelogin",
        "message": "Go authenticate",
    }
    auth._app = app

    with pytest.raises(DeviceCodeAuthRequired) as excinfo:
        auth.get_access_token()

    assert excinfo.value.user_code == "ABC123"
    assert excinfo.value.verification_uri == "https://microsoft.com/devicelogin"
    app.acquire_token_by_device_flow.assert_not_called()
