"""Low-level HTTP client for the platform identity API.

Handles bearer authentication, timeouts and error translation.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import requests

from .exceptions import BackendError, PlatformAPIError

REQUEST_TIMEOUT = 5

logger = logging.getLogger(__name__)


class PlatformClient:
    """HTTP client for the platform's identity API.

    Usage:
        client = PlatformClient("http://platform:8080/identity", token="...")
        response = client.get("/users/42")
    """

    def __init__(self, base_url: str, token: str = "", timeout: int = REQUEST_TIMEOUT):
        """Initialize platform client.

        Args:
            base_url: Identity API base URL
            token: Static bearer token for the platform
            timeout: Per-request timeout in seconds
        """
        if not base_url:
            raise ValueError("Platform base URL is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": "usersapi/1.0"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if extra:
            headers.update(extra)
        return headers

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Execute GET request.

        Raises:
            PlatformAPIError: On HTTP error
        """
        url = f"{self.base_url}{path}"
        headers = self._headers(kwargs.pop("headers", None))
        resp = self._send(requests.get, url, params=params, headers=headers, **kwargs)
        self._handle_error(resp)
        return resp

    def post(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Execute POST request.

        Raises:
            PlatformAPIError: On HTTP error
        """
        url = f"{self.base_url}{path}"
        headers = self._headers(kwargs.pop("headers", None))
        resp = self._send(requests.post, url, json=json, headers=headers, **kwargs)
        self._handle_error(resp)
        return resp

    def put(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Execute PUT request.

        Raises:
            PlatformAPIError: On HTTP error
        """
        url = f"{self.base_url}{path}"
        headers = self._headers(kwargs.pop("headers", None))
        resp = self._send(requests.put, url, json=json, headers=headers, **kwargs)
        self._handle_error(resp)
        return resp

    def delete(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Execute DELETE request.

        Raises:
            PlatformAPIError: On HTTP error
        """
        url = f"{self.base_url}{path}"
        headers = self._headers(kwargs.pop("headers", None))
        resp = self._send(requests.delete, url, params=params, headers=headers, **kwargs)
        self._handle_error(resp)
        return resp

    def _send(self, method, url: str, **kwargs) -> requests.Response:
        try:
            return method(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("Platform request failed: %s %s", url, exc)
            raise BackendError("platform_unreachable", f"Identity platform request failed: {exc}") from exc

    def _handle_error(self, resp: requests.Response) -> None:
        """Centralized error handling for HTTP responses.

        The platform reports errors as ``{"code": ..., "message": ...}``;
        anything else falls back to the raw body.

        Raises:
            PlatformAPIError: If response status indicates error
        """
        if resp.status_code < 400:
            return

        code, message = "platform_error", resp.text
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code") or code
            message = body.get("message") or message

        raise PlatformAPIError(resp.status_code, code, message, resp.url or "")
