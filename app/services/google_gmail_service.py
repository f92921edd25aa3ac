"""
Google Gmail API Service for the cleanup engine.
Pure API client: list-by-label with pagination, get message, delete, trash,
and profile lookup. Response parsing into domain objects lives with the
cleanup feature.

No automatic retries: a failed call is reported to the caller, which
records the outcome and moves on.
"""

from typing import Any

import httpx

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Google Gmail API configuration
GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
GMAIL_USER_ID = "me"

LABEL_SPAM = "SPAM"
LABEL_TRASH = "TRASH"

MAX_PAGE_SIZE = 500  # Gmail API limit for messages.list
REQUEST_TIMEOUT = 30  # seconds


class GoogleGmailError(Exception):
    """Gmail API failure with the HTTP status and Google error reason."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        reason: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.reason = reason
        self.response_data = response_data or {}

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class MessageListPage:
    """One page of a messages.list response. Missing fields are tolerated."""

    def __init__(self, data: Any):
        data = data if isinstance(data, dict) else {}
        messages = data.get("messages") or []

        self.message_ids: list[str] = [
            m["id"] for m in messages if isinstance(m, dict) and isinstance(m.get("id"), str)
        ]
        token = data.get("nextPageToken")
        self.next_page_token: str | None = token if isinstance(token, str) and token else None
        self.result_size_estimate: int = data.get("resultSizeEstimate") or 0


class GoogleGmailService:
    """
    Gmail REST calls used by the cleanup engine.

    Handles HTTP requests, authentication headers, and error mapping.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        operation: str,
        params: dict | None = None,
    ) -> dict:
        url = f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}{path}"

        try:
            response = await self._get_client().request(
                method, url, headers=self._get_auth_headers(access_token), params=params
            )
        except httpx.HTTPError as e:
            logger.warning(
                f"Gmail API {operation} network error",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleGmailError(f"Network error during {operation}: {e}") from e

        return self._handle_api_response(response, operation)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Handle and validate Gmail API response.

        Raises:
            GoogleGmailError: If response contains errors
        """
        if response.is_success:
            if not response.content:
                return {}
            try:
                data = response.json()
            except ValueError as e:
                raise GoogleGmailError(
                    f"Invalid response format: {e}", status_code=response.status_code
                ) from e
            return data if isinstance(data, dict) else {}

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {}

        error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
        if not isinstance(error_info, dict):
            error_info = {}

        error_message = error_info.get("message", f"HTTP {response.status_code}")
        reason = self._extract_reason(error_info)

        log = logger.info if response.status_code == 404 else logger.warning
        log(
            f"Gmail API {operation} failed",
            status_code=response.status_code,
            reason=reason,
            error_message=error_message,
        )

        raise GoogleGmailError(
            self._map_gmail_error(response.status_code, error_message),
            error_code=str(error_info.get("code", response.status_code)),
            status_code=response.status_code,
            reason=reason,
            response_data=error_data if isinstance(error_data, dict) else {},
        )

    @staticmethod
    def _extract_reason(error_info: dict) -> str | None:
        """Pull the machine-readable reason (e.g. insufficientPermissions)."""
        errors = error_info.get("errors")
        if isinstance(errors, list):
            for item in errors:
                if isinstance(item, dict) and item.get("reason"):
                    return str(item["reason"])

        details = error_info.get("details")
        if isinstance(details, list):
            for item in details:
                if isinstance(item, dict) and item.get("reason"):
                    return str(item["reason"])

        status = error_info.get("status")
        return str(status) if status else None

    def _map_gmail_error(self, status_code: int, error_message: str) -> str:
        """Map Gmail API status codes to user-friendly messages."""
        error_mappings = {
            400: "Invalid Gmail request format.",
            401: "Gmail authorization expired. Please reconnect.",
            403: "Gmail access denied. Please reconnect and grant permissions.",
            404: "Email message not found.",
            429: "Too many Gmail requests. Please try again later.",
            500: "Gmail service temporarily unavailable.",
            503: "Gmail service temporarily unavailable.",
        }
        return error_mappings.get(status_code, f"Gmail error: {error_message}")

    async def list_messages_page(
        self,
        access_token: str,
        label_id: str,
        page_token: str | None = None,
        max_results: int = MAX_PAGE_SIZE,
    ) -> MessageListPage:
        """
        Fetch one page of message ids for a label.

        Raises:
            GoogleGmailError: If the page request fails
        """
        params: dict[str, Any] = {
            "labelIds": label_id,
            "maxResults": min(max_results, MAX_PAGE_SIZE),
        }
        if page_token:
            params["pageToken"] = page_token

        data = await self._request("GET", "/messages", access_token, "list_messages", params)
        return MessageListPage(data)

    async def get_message(self, access_token: str, message_id: str, format: str = "full") -> dict:
        """
        Get a specific message by ID as the raw API payload.

        Raises:
            GoogleGmailError: If getting message fails
        """
        return await self._request(
            "GET", f"/messages/{message_id}", access_token, "get_message", {"format": format}
        )

    async def delete_message(self, access_token: str, message_id: str) -> None:
        """
        Permanently delete a message.

        Raises:
            GoogleGmailError: If the delete fails (404 when already gone)
        """
        await self._request("DELETE", f"/messages/{message_id}", access_token, "delete_message")

    async def trash_message(self, access_token: str, message_id: str) -> None:
        """
        Move a message to Trash.

        Raises:
            GoogleGmailError: If the request fails
        """
        await self._request("POST", f"/messages/{message_id}/trash", access_token, "trash_message")

    async def get_profile(self, access_token: str) -> dict:
        """
        Get the mailbox profile (emailAddress, messagesTotal, ...).

        Raises:
            GoogleGmailError: If the request fails
        """
        return await self._request("GET", "/profile", access_token, "get_profile")


google_gmail_service = GoogleGmailService()
