"""Microsoft Graph authentication for the Outlook mail backend.

Objective:
    Acquire and cache an OAuth2 access token for Microsoft Graph so that
    :class:`src.mail_llm_filter.graph_mail.GraphMailService` can attach it to
    its HTTP requests.

Responsibilities:
    - Manage the MSAL ``PublicClientApplication`` lifecycle.
    - Persist and reload the MSAL token cache to/from disk.
    - Perform interactive device-code authentication when no cached token is
      available, or raise :class:`DeviceCodeAuthRequired` for non-console
      callers.
    - Provide ready-to-use HTTP headers for Graph API calls.

High-level call tree:
    - :class:`GraphAuthenticator`
        - :meth:`GraphAuthenticator.get_auth_headers`
            - :meth:`GraphAuthenticator.get_access_token`
                - :meth:`GraphAuthenticator.try_silent_token`
                    - :meth:`GraphAuthenticator._get_app`
                        - :meth:`GraphAuthenticator._load_token_cache`
                    - :meth:`GraphAuthenticator._select_account`
                - device-code flow
                - :meth:`GraphAuthenticator._save_token_cache`

Operational notes:
    - Device-code flow requires user interaction (copy/paste code in browser).
      In console mode the prompt is printed to stdout.
    - Token cache location is stored in the user's home directory.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import msal

from .config import Settings

logger = logging.getLogger(__name__)

# Token cache file location
TOKEN_CACHE_FILE = Path.home() / ".mail_llm_filter_token_cache.json"


class DeviceCodeAuthRequired(RuntimeError):
    """Raised when interactive device-code authentication is required.

    Args:
        flow: MSAL device flow payload returned by ``initiate_device_flow``.
    """

    def __init__(self, flow: dict[str, Any]) -> None:
        super().__init__(flow.get("message") or "Device code authentication required")
        self.flow = flow

    @property
    def user_code(self) -> str:
        """Device code shown to the user."""
        return str(self.flow.get("user_code", ""))

    @property
    def verification_uri(self) -> str:
        """Verification URL."""
        return str(
            self.flow.get("verification_uri")
            or self.flow.get("verification_uri_complete")
            or "https://www.microsoft.com/link"
        )


class GraphAuthenticator:
    """
    Handles Microsoft Graph API authentication using MSAL device-code flow.

    Attributes:
        settings: Application settings containing Azure AD credentials.
        interactive: Print device-code instructions and wait (console), or
            raise :class:`DeviceCodeAuthRequired` (web).
        cache_file: Token cache path.
    """

    GRAPH_SCOPES = [
        "https://graph.microsoft.com/Mail.ReadWrite",
        "https://graph.microsoft.com/Mail.Send",
    ]

    def __init__(
        self,
        settings: Settings,
        interactive: bool = True,
        cache_file: Path = TOKEN_CACHE_FILE,
    ) -> None:
        self.settings = settings
        self.interactive = interactive
        self.cache_file = cache_file
        self._app: Optional[msal.PublicClientApplication] = None

    def _load_token_cache(self) -> msal.SerializableTokenCache:
        """
        Load the token cache from disk, or start with an empty one.

        Returns:
            msal.SerializableTokenCache: Token cache instance.
        """
        cache = msal.SerializableTokenCache()
        if self.cache_file.exists():
            try:
                cache.deserialize(self.cache_file.read_text())
                logger.debug("Loaded token cache from %s", self.cache_file)
            except Exception as e:
                logger.warning(f"Failed to load token cache: {e}")
        else:
            logger.debug("No token cache file found; starting with empty cache")
        return cache

    def _save_token_cache(self, cache: msal.SerializableTokenCache) -> None:
        """Write the token cache to disk when MSAL reports a change."""
        if cache.has_state_changed:
            try:
                self.cache_file.write_text(cache.serialize())
                logger.debug("Saved token cache to file")
            except Exception as e:
                logger.warning(f"Failed to save token cache: {e}")

    def _get_app(self) -> msal.PublicClientApplication:
        """Get or create the MSAL public client application."""
        if self._app is None:
            if not self.settings.azure_client_id:
                raise RuntimeError("AZURE_CLIENT_ID must be set to use the Outlook backend")
            authority = f"https://login.microsoftonline.com/{self.settings.azure_tenant_id}"
            self._app = msal.PublicClientApplication(
                client_id=self.settings.azure_client_id,
                authority=authority,
                token_cache=self._load_token_cache(),
            )
        return self._app

    def _select_account(self, accounts: list[dict]) -> Optional[dict]:
        """Select a cached MSAL account.

        When ``settings.outlook_account_username`` is set, the matching
        account (case-insensitive) is selected; otherwise the first one.

        Args:
            accounts: List of cached MSAL accounts.

        Returns:
            Optional[dict]: Selected account or None when no accounts exist.

        Raises:
            ValueError: If a preferred username is configured but not found.
        """
        if not accounts:
            return None

        preferred = (self.settings.outlook_account_username or "").strip()
        if not preferred:
            return accounts[0]

        preferred_lower = preferred.lower()
        for account in accounts:
            username = str(account.get("username", "")).strip().lower()
            if username and username == preferred_lower:
                return account

        available = [a.get("username") for a in accounts if a.get("username")]
        raise ValueError(
            "Configured OUTLOOK_ACCOUNT_USERNAME was not found in token cache. "
            f"preferred={preferred!r} available={available!r}"
        )

    def try_silent_token(self) -> Optional[str]:
        """Return a cached (or silently refreshed) token, if any.

        Returns:
            Optional[str]: Access token, or None when interaction is needed.
        """
        app = self._get_app()
        selected = self._select_account(app.get_accounts())
        if selected is None:
            logger.debug("No cached accounts found")
            return None

        result = app.acquire_token_silent(scopes=self.GRAPH_SCOPES, account=selected)
        if result and "access_token" in result:
            self._save_token_cache(app.token_cache)
            return result["access_token"]

        logger.debug(
            "Silent acquisition failed for account %s: %s",
            selected.get("username"),
            result.get("error") if result else "no result",
        )
        return None

    def get_access_token(self) -> str:
        """
        Acquire an access token, falling back to device-code flow.

        Returns:
            str: Valid access token for Graph API.

        Raises:
            DeviceCodeAuthRequired: If interaction is needed in non-interactive mode.
            RuntimeError: If token acquisition fails.
        """
        token = self.try_silent_token()
        if token:
            return token

        app = self._get_app()
        flow = app.initiate_device_flow(scopes=self.GRAPH_SCOPES)
        if "user_code" not in flow:
            error = flow.get("error_description", "Unknown error")
            raise RuntimeError(f"Failed to initiate device flow: {error}")

        if not self.interactive:
            raise DeviceCodeAuthRequired(flow)

        print("\n" + "=" * 60)
        print("AUTHENTICATION REQUIRED")
        print("=" * 60)
        print(f"\n{flow['message']}\n")
        print("=" * 60 + "\n")

        result = app.acquire_token_by_device_flow(flow)
        if "access_token" in result:
            logger.debug("Successfully authenticated")
            self._save_token_cache(app.token_cache)
            return result["access_token"]

        error_description = result.get("error_description", "Unknown error")
        logger.error(
            "Failed to acquire token: %s - %s", result.get("error", "unknown"), error_description
        )
        raise RuntimeError(f"Failed to acquire access token: {error_description}")

    def get_auth_headers(self) -> dict[str, str]:
        """
        Get HTTP headers with authorization for Graph API requests.

        Returns:
            dict[str, str]: Headers dictionary with Bearer token.
        """
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }
