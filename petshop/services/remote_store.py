### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Remote Store Client -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Remote Store Client

HTTP clients for the file store that holds all shared PetShop data.
Supports two transports:
1. GitHub Contents API - talks to api.github.com with a personal access token
2. Backend Mode - talks to a PetShop backend at {api_url}/api/file
   (the backend holds the GitHub token, so no per-request auth)

Both use the file's content hash (sha) as a version token. Writing with a
stale or missing token when the file exists is a conflict. All mutations
go through RemoteStore.update(), which re-reads, re-applies and retries.
"""

import asyncio
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from petshop.errors import (
    ConflictError,
    ConnectionUnavailableError,
    DecodingError,
    RemoteAuthError,
    RemoteConnectionError,
    RemoteStoreError,
    RemoteTimeoutError,
)

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

# Errors worth another read-transform-write attempt
RETRYABLE_ERRORS = (ConflictError, RemoteTimeoutError)


def normalize_url(url: str) -> str:
    """Strip whitespace and trailing slashes from a base URL"""
    return url.strip().rstrip("/")


@dataclass
class RemoteFile:
    """A remote file's content and version token"""

    content: bytes
    sha: str | None

    @property
    def exists(self) -> bool:
        return self.sha is not None


@dataclass
class RetryPolicy:
    """
    Retry settings for remote mutations.

    The delay before retry N (1-based) is ``backoff(N)`` when given,
    otherwise ``N * backoff_seconds``.
    """

    max_attempts: int = 3
    backoff_seconds: float = 0.5
    backoff: Callable[[int], float] | None = None

    def delay(self, attempt: int) -> float:
        if self.backoff is not None:
            return self.backoff(attempt)
        return attempt * self.backoff_seconds


class RemoteStore(ABC):
    """
    Base class for remote file stores.

    Subclasses implement read_file() and write(); everything else is
    built on those two.
    """

    service_name = "remote store"

    def __init__(
        self,
        timeout: float = 30,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the store.

        Args:
            timeout: Request timeout in seconds
            retry_policy: Retry settings for update()
            transport: Optional httpx transport (used by tests)
        """
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the store has the credentials or URL it needs"""

    @abstractmethod
    async def read_file(self, path: str) -> RemoteFile:
        """
        Read a file and its version token.

        Returns empty content and sha=None if the file does not exist.
        """

    @abstractmethod
    async def write(self, path: str, content: bytes, message: str, sha: str | None = None) -> None:
        """
        Create or replace a file.

        Args:
            path: File path under the store root
            content: New file content
            message: Change note (commit message)
            sha: Version token of the file being replaced (None to create)

        Raises:
            ConflictError: If sha is stale, or None while the file exists
        """

    def _build_client(self) -> httpx.AsyncClient:
        raise NotImplementedError

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = self._build_client()
        return self._client

    async def close(self) -> None:
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise ConnectionUnavailableError()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, translating transport failures"""
        try:
            client = await self._get_client()
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            raise RemoteTimeoutError(f"{self.service_name} request timed out after {self.timeout}s")
        except httpx.ConnectError as e:
            raise RemoteConnectionError(f"Cannot connect to {self.service_name}: {e}")
        except httpx.HTTPError as e:
            raise RemoteConnectionError(f"Unexpected error talking to {self.service_name}: {e}")

    def _raise_for_status(self, response: httpx.Response, path: str, writing: bool = False) -> None:
        """Map HTTP error statuses to store errors"""
        status = response.status_code
        if status in (200, 201):
            return
        if status in (401, 403):
            raise RemoteAuthError(
                f"{self.service_name} rejected the credentials ({status}) - check the token",
                status_code=status,
            )
        if status == 409:
            raise ConflictError(path)
        # GitHub answers 422 when the sha is missing for an existing file
        if status == 422 and writing and "sha" in response.text:
            raise ConflictError(path)
        raise RemoteStoreError(f"HTTP error {status} for {path}", status_code=status)

    @staticmethod
    def _decode_content(encoded: str | None, path: str) -> bytes:
        """Decode base64 file content (GitHub wraps it at 60 columns)"""
        try:
            return base64.b64decode((encoded or "").replace("\n", ""), validate=True)
        except (binascii.Error, ValueError):
            raise DecodingError(f"Invalid base64 content for {path}")

    @staticmethod
    def _parse_json(response: httpx.Response, path: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise DecodingError(f"Invalid JSON response for {path}")
        if not isinstance(data, dict):
            raise DecodingError(f"Unexpected response shape for {path}")
        return data

    # ========================================
    # Convenience Methods
    # ========================================

    async def read(self, path: str) -> bytes:
        """Read file content, returning b"" if the file does not exist"""
        return (await self.read_file(path)).content

    async def put_file(self, path: str, content: bytes, message: str) -> None:
        """Write a file, fetching its current version token just before"""
        current = await self.read_file(path)
        await self.write(path, content, message, sha=current.sha)

    async def update(
        self,
        path: str,
        transform: Callable[[bytes], bytes | None],
        message: str,
        policy: RetryPolicy | None = None,
    ) -> bytes:
        """
        Read-transform-write with optimistic concurrency.

        ``transform`` receives the freshly read content on every attempt and
        returns the new content, or None to leave the file alone. Content
        equal to what is already stored is not written.

        Args:
            path: File path under the store root
            transform: Function from current content to new content
            message: Change note (commit message)
            policy: Retry settings (defaults to the store's policy)

        Returns:
            The content now stored remotely

        Raises:
            ConflictError / RemoteTimeoutError: If every attempt failed
            Any error raised by ``transform`` (not retried)
        """
        policy = policy or self.retry_policy
        last_error: Exception | None = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                current = await self.read_file(path)
                new_content = transform(current.content)
                if new_content is None or (current.exists and new_content == current.content):
                    logger.debug(f"No changes to write for {path}")
                    return current.content

                await self.write(path, new_content, message, sha=current.sha)
                return new_content

            except RETRYABLE_ERRORS as e:
                last_error = e
                if attempt >= policy.max_attempts:
                    break
                delay = policy.delay(attempt)
                logger.warning(
                    f"{type(e).__name__} writing {path} (attempt {attempt}/{policy.max_attempts}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        logger.error(f"Giving up on {path} after {policy.max_attempts} attempts: {last_error}")
        raise last_error

    async def overwrite(self, path: str, content: bytes, message: str) -> None:
        """Replace a file regardless of its current content (with retries)"""
        await self.update(path, lambda _current: content, message)


class GitHubContentsStore(RemoteStore):
    """
    Store backed by the GitHub Contents API.

    Every file lives at /repos/{owner}/{repo}/contents/{path}; content is
    base64-encoded in both directions.
    """

    service_name = "GitHub"

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None,
        branch: str | None = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the GitHub store.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Personal access token with repo scope
            branch: Branch to read and commit to (None = default branch)
            base_url: GitHub API base URL
            timeout: Request timeout in seconds
            retry_policy: Retry settings for update()
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(timeout=timeout, retry_policy=retry_policy, transport=transport)
        self.owner = owner
        self.repo = repo
        self.token = token
        self.branch = branch
        self.base_url = normalize_url(base_url)

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.owner and self.repo)

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            headers={
                "Authorization": f"token {self.token}",
                "Accept": "application/vnd.github.v3+json",
            },
            transport=self.transport,
        )

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{quote(path.lstrip('/'), safe='/')}"

    async def read_file(self, path: str) -> RemoteFile:
        self._ensure_configured()
        params = {"ref": self.branch} if self.branch else None

        response = await self._request("GET", self._contents_url(path), params=params)
        if response.status_code == 404:
            return RemoteFile(content=b"", sha=None)
        self._raise_for_status(response, path)

        data = self._parse_json(response, path)
        sha = data.get("sha")

        # Files over 1 MB come back without inline content
        if data.get("encoding") == "none":
            raw = await self._request(
                "GET",
                self._contents_url(path),
                params=params,
                headers={"Accept": "application/vnd.github.raw"},
            )
            self._raise_for_status(raw, path)
            return RemoteFile(content=raw.content, sha=sha)

        return RemoteFile(content=self._decode_content(data.get("content"), path), sha=sha)

    async def write(self, path: str, content: bytes, message: str, sha: str | None = None) -> None:
        self._ensure_configured()

        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
        }
        if sha:
            body["sha"] = sha
        if self.branch:
            body["branch"] = self.branch

        response = await self._request("PUT", self._contents_url(path), json=body)
        self._raise_for_status(response, path, writing=True)
        logger.info(f"Committed {path}: {message}")


class BackendFileStore(RemoteStore):
    """
    Store backed by a PetShop backend service.

    Same semantics as the GitHub store, routed through {api_url}/api/file:
        GET  /api/file?path=<path>  -> {"content": <base64>, "sha": <token>} or 404
        PUT  /api/file  {path, content, message, sha?}  -> 200/201, 409 on conflict
    """

    service_name = "PetShop backend"

    def __init__(
        self,
        api_url: str | None,
        timeout: float = 30,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=timeout, retry_policy=retry_policy, transport=transport)
        self.api_url = normalize_url(api_url or "")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url)

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
        )

    async def read_file(self, path: str) -> RemoteFile:
        self._ensure_configured()

        response = await self._request("GET", "/api/file", params={"path": path})
        if response.status_code == 404:
            return RemoteFile(content=b"", sha=None)
        self._raise_for_status(response, path)

        data = self._parse_json(response, path)
        return RemoteFile(content=self._decode_content(data.get("content"), path), sha=data.get("sha"))

    async def write(self, path: str, content: bytes, message: str, sha: str | None = None) -> None:
        self._ensure_configured()

        body: dict[str, Any] = {
            "path": path,
            "content": base64.b64encode(content).decode("ascii"),
            "message": message,
        }
        if sha:
            body["sha"] = sha

        response = await self._request("PUT", "/api/file", json=body)
        self._raise_for_status(response, path, writing=True)
        logger.info(f"Saved {path} via backend: {message}")


def create_remote_store(
    owner: str,
    repo: str,
    token: str | None = None,
    api_url: str | None = None,
    branch: str | None = None,
    timeout: float = 30,
    retry_policy: RetryPolicy | None = None,
) -> RemoteStore:
    """
    Create the store for the configured transport.

    A backend URL takes precedence: when set, the token is not needed.
    """
    if api_url and api_url.strip():
        return BackendFileStore(api_url=api_url, timeout=timeout, retry_policy=retry_policy)
    return GitHubContentsStore(
        owner=owner,
        repo=repo,
        token=token,
        branch=branch,
        timeout=timeout,
        retry_policy=retry_policy,
    )
