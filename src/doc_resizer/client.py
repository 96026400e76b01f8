"""HTTP client for the remote document API."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from .constants import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, str] = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    429: "QUOTA",
    500: "INTERNAL",
    503: "UNAVAILABLE",
}


class RemoteError(RuntimeError):
    def __init__(
        self,
        code: str,
        message: str,
        *,
        status: int | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.transient = transient


class BatchClient(Protocol):
    def batch_update(self, document_id: str, requests: list[dict[str, Any]]) -> list[dict[str, Any]]:  # pragma: no cover - interface
        ...


def error_from_response(response: httpx.Response) -> RemoteError:
    """Turn a failed HTTP response into a classified ``RemoteError``."""
    status = response.status_code
    remote_status = ""
    message = response.reason_phrase or f"HTTP {status}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        remote_status = str(error.get("status") or "")
        message = str(error.get("message") or message)
    code = remote_status or _STATUS_CODES.get(status, f"HTTP_{status}")
    if code == "RESOURCE_EXHAUSTED":
        code = "QUOTA"
    transient = status >= 500 or code == "INTERNAL" or "internal error" in message.lower()
    return RemoteError(code, message, status=status, transient=transient)


class DocsClient:
    """Thin synchronous wrapper over the document get and batchUpdate endpoints.

    The access token is supplied by the caller; refreshing it is not this
    client's concern.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not access_token:
            raise ValueError("An access token is required")
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout_s,
            transport=transport,
        )

    def __enter__(self) -> "DocsClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def get_document(self, document_id: str) -> dict[str, Any]:
        return self._send("GET", f"/documents/{quote(document_id, safe='')}")

    def batch_update(self, document_id: str, requests: list[dict[str, Any]]) -> list[dict[str, Any]]:
        payload = self._send(
            "POST",
            f"/documents/{quote(document_id, safe='')}:batchUpdate",
            json={"requests": requests},
        )
        replies = payload.get("replies") or []
        # Operations without a reply may be omitted at the tail.
        replies = [reply if isinstance(reply, dict) else {} for reply in replies]
        if len(replies) < len(requests):
            replies.extend({} for _ in range(len(requests) - len(replies)))
        return replies

    def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteError("TIMEOUT", f"Request timed out: {method} {url}", transient=True) from exc
        except httpx.TransportError as exc:
            raise RemoteError("NETWORK", f"Network error: {exc}", transient=True) from exc
        except httpx.HTTPError as exc:
            raise RemoteError("HTTP_ERROR", str(exc)) from exc
        if response.is_error:
            error = error_from_response(response)
            logger.debug("Remote call %s %s failed: %s %s", method, url, error.code, error)
            raise error
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteError("INVALID_RESPONSE", "Remote returned a non-JSON body", status=response.status_code) from exc
        if not isinstance(data, dict):
            raise RemoteError("INVALID_RESPONSE", "Remote returned an unexpected payload", status=response.status_code)
        return data


__all__ = ["BatchClient", "DocsClient", "RemoteError", "error_from_response"]
