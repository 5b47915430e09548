"""Microsoft Graph (Outlook) mail backend.

Objective:
    Implement :class:`src.mail_llm_filter.ports.MailService` on top of the
    Microsoft Graph Mail endpoints.

Responsibilities:
    - Issue authenticated HTTP requests to Graph (via :class:`requests`).
    - Fetch unread Inbox messages and convert them to
      :class:`src.mail_llm_filter.models.Message`.
    - Apply filter actions (move, delete, archive, spam, mark read) and send
      replies.
    - Resolve folder names/paths to folder ids, creating missing folders.

High-level call tree:
    - Public (async) API:
        - :meth:`GraphMailService.initialize`
        - :meth:`GraphMailService.get_unread_messages`
        - :meth:`GraphMailService.move_to_folder`
            - :meth:`GraphMailService._resolve_folder_id`
                - :meth:`GraphMailService._find_child_folder`
                - :meth:`GraphMailService._create_folder`
        - :meth:`GraphMailService.delete_message` / ``archive_message`` /
          ``mark_as_spam`` (well-known folders)
        - :meth:`GraphMailService.mark_as_read`
        - :meth:`GraphMailService.send_reply`
    - Internal helpers:
        - :meth:`GraphMailService._make_request` (auth + error handling)

Graph endpoints used:
    - ``GET /me/mailFolders/inbox/messages``
    - ``PATCH /me/messages/{id}``
    - ``POST /me/messages/{id}/move``
    - ``POST /me/messages/{id}/createReply`` + ``POST /me/messages/{draft}/send``
    - ``GET /me/mailFolders`` / ``GET /me/mailFolders/{id}/childFolders``
    - ``POST /me/mailFolders`` / ``POST /me/mailFolders/{id}/childFolders``

Error handling:
    - HTTP errors are logged and raised from :meth:`_make_request`; the action
      dispatcher records them on the filter outcome.
    - The blocking HTTP calls run in a worker thread via ``asyncio.to_thread``.
"""

import asyncio
import logging
from typing import AbstractSet, Optional
from urllib.parse import quote

import requests

from .auth import GraphAuthenticator
from .config import Settings
from .models import Message
from .sanitizer import body_to_text

logger = logging.getLogger(__name__)

# Graph well-known folder names accepted as destinationId.
DELETED_ITEMS_FOLDER = "deleteditems"
ARCHIVE_FOLDER = "archive"
JUNK_FOLDER = "junkemail"

MESSAGE_FIELDS = "id,conversationId,subject,receivedDateTime,body,bodyPreview,from,toRecipients,isRead,categories"


def message_from_graph(item: dict) -> Message:
    """Convert a Graph message payload into a :class:`Message`.

    Args:
        item: Graph message JSON.

    Returns:
        Message: Pipeline message with a plain-text body.
    """
    sender = (item.get("from") or {}).get("emailAddress") or {}
    body = item.get("body") or {}
    recipients = [
        (r.get("emailAddress") or {}).get("address", "")
        for r in item.get("toRecipients") or []
    ]

    return Message.model_validate(
        {
            "id": item["id"],
            "thread_id": item.get("conversationId") or "",
            "from_address": (sender.get("address") or "").lower(),
            "from_name": sender.get("name") or None,
            "to": [r for r in recipients if r],
            "subject": item.get("subject") or "",
            "body": body_to_text(body.get("content") or "", body.get("contentType") or "text"),
            "received_at": item.get("receivedDateTime"),
            "is_unread": not item.get("isRead", False),
            "labels": item.get("categories") or [],
            "snippet": item.get("bodyPreview"),
        }
    )


class GraphMailService:
    """
    Outlook mail backend using Microsoft Graph.

    Attributes:
        settings: Application settings.
        auth: Graph API authenticator.
    """

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

    def __init__(self, settings: Settings, auth: GraphAuthenticator) -> None:
        self.settings = settings
        self.auth = auth
        self._authenticated = False
        self._folder_ids: dict[tuple[Optional[str], str], str] = {}

    @property
    def provider_name(self) -> str:
        return "Outlook"

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
        suppress_statuses: Optional[AbstractSet[int]] = None,
    ) -> dict:
        """Make an authenticated request to Microsoft Graph.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE).
            endpoint: API endpoint path.
            params: Query parameters.
            json_data: JSON body data.
            suppress_statuses: Statuses logged at DEBUG instead of ERROR.

        Returns:
            dict: Response JSON data (``{}`` for empty responses).

        Raises:
            requests.HTTPError: If request fails.
        """
        url = f"{self.GRAPH_BASE_URL}{endpoint}"
        headers = self.auth.get_auth_headers()

        response = requests.request(
            method=method,
            url=url,
            headers=headers,
            params=params,
            json=json_data,
            timeout=30,
        )

        if not response.ok:
            if suppress_statuses and response.status_code in suppress_statuses:
                logger.debug(
                    "Graph API expected non-2xx: %s - %s", response.status_code, response.text
                )
            else:
                logger.error("Graph API error: %s - %s", response.status_code, response.text)
            response.raise_for_status()

        if response.status_code in (202, 204) or not response.content:
            return {}

        return response.json()

    async def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        return await asyncio.to_thread(self._make_request, method, endpoint, **kwargs)

    async def initialize(self) -> None:
        """Acquire a token so that :attr:`is_authenticated` becomes True."""
        await asyncio.to_thread(self.auth.get_access_token)
        self._authenticated = True
        logger.debug("Outlook mail service authenticated")

    async def get_unread_messages(self, max_results: int = 50) -> list[Message]:
        """Fetch unread messages from the Inbox, newest first.

        Args:
            max_results: Maximum number of messages.

        Returns:
            list[Message]: Parsed messages (unparseable items are skipped).
        """
        params = {
            "$top": max_results,
            "$select": MESSAGE_FIELDS,
            "$filter": "isRead eq false",
            "$orderby": "receivedDateTime desc",
        }

        logger.debug("Fetching up to %s unread messages", max_results)
        response = await self._request("GET", "/me/mailFolders/inbox/messages", params=params)

        messages = []
        for item in response.get("value", []):
            try:
                messages.append(message_from_graph(item))
            except Exception as e:
                logger.warning(f"Failed to parse email: {e}")
                continue

        logger.debug("Fetched %s unread messages", len(messages))
        return messages

    async def _move(self, message_id: str, destination_id: str) -> None:
        safe_id = quote(message_id, safe="")
        await self._request(
            "POST", f"/me/messages/{safe_id}/move", json_data={"destinationId": destination_id}
        )
        logger.debug("Moved email %s to folder %s", message_id, destination_id)

    async def _find_child_folder(self, parent_id: Optional[str], name: str) -> Optional[str]:
        if parent_id:
            endpoint = f"/me/mailFolders/{quote(parent_id, safe='')}/childFolders"
        else:
            endpoint = "/me/mailFolders"

        params = {"$top": 100, "$select": "id,displayName"}
        response = await self._request("GET", endpoint, params=params)
        for item in response.get("value", []):
            if str(item.get("displayName", "")).lower() == name.lower():
                return item["id"]
        return None

    async def _create_folder(self, parent_id: Optional[str], name: str) -> Optional[str]:
        if parent_id:
            endpoint = f"/me/mailFolders/{quote(parent_id, safe='')}/childFolders"
        else:
            endpoint = "/me/mailFolders"

        try:
            response = await self._request(
                "POST", endpoint, json_data={"displayName": name}, suppress_statuses={409}
            )
        except requests.HTTPError as e:
            # Created concurrently; caller re-reads the listing.
            if e.response is not None and e.response.status_code == 409:
                logger.debug("Folder already exists: %s", name)
                return None
            raise

        logger.info("Created folder: %s", name)
        return response.get("id")

    async def _resolve_folder_id(self, folder_name: str) -> str:
        """Resolve a folder name or ``Parent/Child`` path, creating missing parts.

        Args:
            folder_name: Folder display name or path.

        Returns:
            str: Folder id.

        Raises:
            ValueError: If the path is empty or a folder cannot be created.
        """
        segments = [s.strip() for s in folder_name.replace("\\", "/").split("/") if s.strip()]
        if not segments:
            raise ValueError(f"Invalid folder name: {folder_name!r}")

        parent_id: Optional[str] = None
        for segment in segments:
            key = (parent_id, segment.lower())
            folder_id = self._folder_ids.get(key)
            if folder_id is None:
                folder_id = await self._find_child_folder(parent_id, segment)
            if folder_id is None:
                folder_id = await self._create_folder(parent_id, segment)
            if folder_id is None:
                folder_id = await self._find_child_folder(parent_id, segment)
            if folder_id is None:
                raise ValueError(f"Unable to resolve or create folder: {folder_name}")

            self._folder_ids[key] = folder_id
            parent_id = folder_id

        return parent_id

    async def move_to_folder(self, message_id: str, folder_name: str) -> None:
        folder_id = await self._resolve_folder_id(folder_name)
        await self._move(message_id, folder_id)

    async def delete_message(self, message_id: str) -> None:
        await self._move(message_id, DELETED_ITEMS_FOLDER)

    async def archive_message(self, message_id: str) -> None:
        await self._move(message_id, ARCHIVE_FOLDER)

    async def mark_as_spam(self, message_id: str) -> None:
        await self._move(message_id, JUNK_FOLDER)

    async def mark_as_read(self, message_id: str) -> None:
        safe_id = quote(message_id, safe="")
        await self._request("PATCH", f"/me/messages/{safe_id}", json_data={"isRead": True})
        logger.debug("Marked email %s as read", message_id)

    async def send_reply(self, message_id: str, subject: str, body: str) -> None:
        """Reply to a message with a custom subject and plain-text body.

        A reply draft is created, its subject/body replaced, then sent.
        """
        safe_id = quote(message_id, safe="")
        draft = await self._request("POST", f"/me/messages/{safe_id}/createReply")

        safe_draft_id = quote(draft["id"], safe="")
        await self._request(
            "PATCH",
            f"/me/messages/{safe_draft_id}",
            json_data={"subject": subject, "body": {"contentType": "text", "content": body}},
        )
        await self._request("POST", f"/me/messages/{safe_draft_id}/send")
        logger.debug("Sent reply to email %s", message_id)
