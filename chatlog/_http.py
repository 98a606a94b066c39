"""requests.Session wrapper for the agent bridge: optional auth, error mapping, retry."""

import logging
import time
from typing import Any

import requests

from ._exceptions import STATUS_MAP, APIError

logger = logging.getLogger(__name__)

# Retry config
_MAX_RETRIES = 3
_INITIAL_BACKOFF = 0.5  # seconds
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _backoff(attempt: int) -> float:
    return _INITIAL_BACKOFF * (2**attempt)


def _raise_for_status(resp: requests.Response, *, method: str = "", path: str = "") -> None:
    """Map an HTTP error response to a typed exception."""
    message = f"HTTP {resp.status_code}"
    request_id = None
    try:
        body = resp.json()
        # Bridge errors look like {"error": {"message", "request_id"}} or {"detail": ...}
        error_obj = body.get("error") if isinstance(body, dict) else None
        if isinstance(error_obj, dict):
            message = error_obj.get("message", message)
            request_id = error_obj.get("request_id")
        elif isinstance(error_obj, str):
            message = error_obj
        elif isinstance(body, dict):
            message = body.get("detail", message)
            request_id = body.get("request_id")
    except ValueError:
        logger.debug("Failed to parse error body: %s", resp.text[:200] if resp.text else "empty")
        message = resp.text or message

    resp.close()
    exc_cls = STATUS_MAP.get(resp.status_code, APIError)
    raise exc_cls(
        str(message), status_code=resp.status_code, request_id=request_id, method=method, path=path
    )


class HTTPClient:
    """Bridge HTTP client with optional Bearer auth, error mapping and retry."""

    def __init__(self, base_url: str, token: str | None = None, timeout: int = 60):
        self._session = requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        self._session.headers["Content-Type"] = "application/json"
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request_with_retry(
        self, method: str, url: str, *, is_stream: bool = False, **kwargs: Any
    ) -> requests.Response:
        """Send request with retry on 429/5xx and connection errors. Respects Retry-After."""
        for attempt in range(_MAX_RETRIES):
            try:
                resp = self._session.request(
                    method, url, timeout=self._timeout, stream=is_stream, **kwargs
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                logger.warning("Request failed (attempt %d/%d): %s", attempt + 1, _MAX_RETRIES, e)
                if attempt < _MAX_RETRIES - 1:
                    time.sleep(_backoff(attempt))
                    continue
                raise APIError(str(e), status_code=None, method=method, path=url) from e

            if resp.ok:
                return resp

            if resp.status_code not in _RETRYABLE_STATUS or attempt == _MAX_RETRIES - 1:
                _raise_for_status(resp, method=method, path=url)

            retry_after = resp.headers.get("Retry-After")
            delay = _backoff(attempt)
            if retry_after and resp.status_code == 429:
                try:
                    delay = float(retry_after)
                except ValueError:
                    logger.debug("Unparseable Retry-After header: %s", retry_after)
            resp.close()
            logger.warning(
                "Retrying %s %s after HTTP %d (attempt %d, delay %.1fs)",
                method,
                url,
                resp.status_code,
                attempt + 1,
                delay,
            )
            time.sleep(delay)

        raise APIError("Max retries exceeded", status_code=None, method=method, path=url)

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send request and raise typed exception on error."""
        return self._request_with_retry(method, f"{self._base_url}{path}", **kwargs)

    def stream(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send request with stream=True for SSE parsing."""
        return self._request_with_retry(method, f"{self._base_url}{path}", is_stream=True, **kwargs)

    def close(self) -> None:
        self._session.close()
