"""Minimal client for the W3C WebDriver HTTP protocol (geckodriver, chromedriver)."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_DEFAULT_TIMEOUT = 30


class WebDriverError(RuntimeError):
    """Raised when the WebDriver server is unreachable or answers with an error."""

    def __init__(self, message: str, error: str = "unknown error") -> None:
        super().__init__(message)
        self.error = error


class WebDriverSession:
    """One browser session on a WebDriver server at ``base_url``."""

    def __init__(
        self,
        base_url: str,
        *,
        http: Optional[requests.Session] = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session_id: Optional[str] = None
        self._http = http or requests.Session()
        self._timeout = timeout

    def start(self, capabilities: Dict[str, Any]) -> str:
        payload = {"capabilities": {"alwaysMatch": capabilities}}
        value = self._request("POST", "/session", payload)
        session_id = (value or {}).get("sessionId")
        if not session_id:
            raise WebDriverError(f"{self.base_url} did not return a session id", "session not created")
        self.session_id = session_id
        logger.debug("Opened WebDriver session %s on %s", session_id, self.base_url)
        return session_id

    def navigate(self, url: str) -> None:
        self._request("POST", self._session_path("/url"), {"url": url})

    def current_url(self) -> str:
        value = self._request("GET", self._session_path("/url"))
        if not isinstance(value, str):
            raise WebDriverError(f"Unexpected current URL payload: {value!r}")
        return value

    def quit(self) -> None:
        if self.session_id is None:
            return
        try:
            self._request("DELETE", self._session_path(""))
        finally:
            self.session_id = None

    def _session_path(self, suffix: str) -> str:
        if self.session_id is None:
            raise WebDriverError("No active WebDriver session", "invalid session id")
        return f"/session/{self.session_id}{suffix}"

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            raise WebDriverError(f"{method} {url} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        value = body.get("value") if isinstance(body, dict) else None

        if response.status_code >= 400:
            error = "unknown error"
            message = response.text[:200]
            if isinstance(value, dict):
                error = value.get("error") or error
                message = value.get("message") or message
            logger.debug("WebDriver %s %s failed: status=%s error=%s", method, path, response.status_code, error)
            raise WebDriverError(message, error)
        return value
