"""GitHub REST client that translates transport failures into typed errors."""

import json
from typing import Any

import requests
from loguru import logger

from arbor_sync.config import API_TOKEN_FILES, GITHUB_API_URL, REQUEST_TIMEOUT, resolve_token
from arbor_sync.errors import (
    AlreadyExists,
    AuthenticationError,
    ConflictError,
    NetworkError,
    NotFound,
    PermissionDenied,
)


class GitHubApi:
    """Authenticated JSON-over-HTTP wrapper around the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = GITHUB_API_URL,
        anonymous: bool = False,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.sess = requests.Session()
        self.sess.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )

        self.api_token = token or resolve_token()
        if not self.api_token and not anonymous:
            msg = f"Cannot find GitHub token, was looking at {API_TOKEN_FILES!r}"
            raise AuthenticationError(msg)
        if self.api_token:
            self.sess.headers["Authorization"] = f"Bearer {self.api_token}"

        logger.debug(
            "API ready: base_url {!r}, authenticated {!r}", self.base_url, bool(self.api_token)
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Invoke a REST endpoint, return decoded JSON (None for empty bodies)."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug("Making request: {} {!r} {}", method, path, repr(payload)[:32])
        try:
            r = self.sess.request(method, url, json=payload, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            msg = f"{method} {path} failed: {e}"
            raise NetworkError(msg) from e
        return _decode(r, f"{method} {path}")

    def fetch_url(self, url: str) -> Any:
        """GET an absolute URL, such as a published node listing."""
        logger.debug("Fetching {!r}", url)
        try:
            r = self.sess.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            msg = f"GET {url} failed: {e}"
            raise NetworkError(msg) from e
        return _decode(r, f"GET {url}")


def _decode(r: requests.Response, what: str) -> Any:
    status = r.status_code
    if status < 300:
        if status == 204 or not r.content:
            return None
        try:
            # Published listings may carry a UTF-8 BOM.
            return json.loads(r.content.decode("utf-8-sig"))
        except ValueError as e:
            msg = f"{what}: response is not JSON"
            raise NetworkError(msg) from e

    detail = _error_message(r)
    msg = f"{what} -> {status}: {detail}"
    if status == 401:
        raise AuthenticationError(msg)
    if status == 403:
        raise PermissionDenied(msg)
    if status == 404:
        raise NotFound(msg)
    if status == 409:
        raise ConflictError(msg)
    if status == 422:
        lowered = detail.lower()
        if "already exists" in lowered:
            raise AlreadyExists(msg)
        if "sha" in lowered:
            raise ConflictError(msg)
    raise NetworkError(msg)


def _error_message(r: requests.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data)
    return str(data)[:200]
