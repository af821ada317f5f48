"""Resilient async GitHub client for portfolio repository discovery."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.contracts import (
    ContentListContract,
    ContributorsContract,
    FetchResult,
    FetchState,
    LanguagesContract,
    ReadmeContract,
    RepoContract,
    RepoListContract,
)

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = ("authorization", "token", "api_key", "apikey", "secret", "password", "signature")
_PAYLOAD_KEYS = ("body", "raw", "content", "payload", "response", "readme")
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(sha256=)[0-9a-f]+"),
    re.compile(r"\b(gh[pousr]_)[A-Za-z0-9]{20,}"),
    re.compile(r"\b(sk-)[A-Za-z0-9_-]{16,}"),
)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a copy of a log payload with credentials and bulky bodies removed."""

    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            field = str(raw_key)
            lowered = field.lower()
            if any(marker in lowered for marker in _SENSITIVE_KEYS):
                cleaned[field] = _REDACTED_VALUE
            else:
                cleaned[field] = sanitize_for_log(raw_value, key=field)
        return cleaned

    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]

    if isinstance(value, str):
        text = value
        for pattern in _TOKEN_PATTERNS:
            text = pattern.sub(rf"\1{_REDACTED_VALUE}", text)
        if key and any(marker in key.lower() for marker in _PAYLOAD_KEYS) and text.strip():
            return f"<redacted payload ({len(value)} chars)>"
        return text

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


class _RetryableRequestError(Exception):
    """Rate limit, server error or transport failure worth another attempt."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _setting(value: Any, name: str, default: Any) -> Any:
    if value is not None:
        return value
    return getattr(settings, name, default)


class GitHubPortfolioClient:
    """GitHub REST client returning `FetchResult` envelopes instead of raising."""

    BASE_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"
    ACCEPT_RAW = "application/vnd.github.raw+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_buffer_seconds: Optional[int] = None,
        max_rate_limit_wait_seconds: Optional[float] = None,
        base_url: Optional[str] = None,
        transport: Optional[Any] = None,
    ) -> None:
        self._token = token if token is not None else settings.GITHUB_TOKEN
        self._timeout_seconds = _setting(timeout_seconds, "GITHUB_TIMEOUT_SECONDS", 30.0)
        self._max_retries = max(1, int(_setting(max_retries, "GITHUB_MAX_RETRIES", 3)))
        self._backoff_base_seconds = _setting(backoff_base_seconds, "GITHUB_BACKOFF_BASE_SECONDS", 1.0)
        self._backoff_max_seconds = _setting(backoff_max_seconds, "GITHUB_BACKOFF_MAX_SECONDS", 16.0)
        self._rate_limit_buffer_seconds = _setting(rate_limit_buffer_seconds, "GITHUB_RATE_LIMIT_BUFFER_SECONDS", 2)
        self._max_rate_limit_wait_seconds = _setting(
            max_rate_limit_wait_seconds, "GITHUB_MAX_RATE_LIMIT_WAIT_SECONDS", 60.0
        )
        self._base_url = base_url or self.BASE_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    async def __aenter__(self) -> "GitHubPortfolioClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def list_user_repos(
        self,
        username: str,
        *,
        page: int = 1,
        per_page: int = 100,
        sort: str = "updated",
    ) -> RepoListContract:
        return await self._fetch_json_contract(
            f"/users/{username}/repos",
            params={"type": "owner", "sort": sort, "page": page, "per_page": per_page},
        )

    async def list_org_repos(self, org: str, *, page: int = 1, per_page: int = 100) -> RepoListContract:
        return await self._fetch_json_contract(
            f"/orgs/{org}/repos",
            params={"page": page, "per_page": per_page},
        )

    async def list_contributors(self, owner: str, repo: str, *, per_page: int = 100) -> ContributorsContract:
        return await self._fetch_json_contract(
            f"/repos/{owner}/{repo}/contributors",
            params={"per_page": per_page},
        )

    async def get_repo(self, owner: str, repo: str) -> RepoContract:
        return await self._fetch_json_contract(f"/repos/{owner}/{repo}")

    async def get_languages(self, owner: str, repo: str) -> LanguagesContract:
        return await self._fetch_json_contract(f"/repos/{owner}/{repo}/languages")

    async def list_root_contents(self, owner: str, repo: str) -> ContentListContract:
        return await self._fetch_json_contract(f"/repos/{owner}/{repo}/contents")

    async def get_readme(self, owner: str, repo: str) -> ReadmeContract:
        """Fetch the repository README as raw markdown text."""

        response = await self._request(f"/repos/{owner}/{repo}/readme", accept=self.ACCEPT_RAW, raw=True)
        if not response.is_ok:
            return response
        if not isinstance(response.data, str) or not response.data.strip():
            return FetchResult(state=FetchState.EMPTY, data="", status_code=response.status_code)
        return response

    async def search_commits(
        self,
        author: str,
        *,
        page: int = 1,
        per_page: int = 100,
    ) -> RepoListContract:
        """Search commits authored by `author`.

        Returns the `items` payload of `/search/commits`; each item carries a
        `repository` object identifying where the commit lives.
        """

        response = await self._request(
            "/search/commits",
            params={
                "q": f"author:{author}",
                "sort": "author-date",
                "order": "desc",
                "page": page,
                "per_page": per_page,
            },
            accept=self.ACCEPT_JSON,
        )
        if not response.is_ok:
            return response

        payload = response.data if isinstance(response.data, dict) else {}
        items = payload.get("items") if isinstance(payload.get("items"), list) else []
        if not items:
            return FetchResult(state=FetchState.EMPTY, data=[], status_code=response.status_code)

        return FetchResult(
            state=FetchState.OK,
            data=items,
            status_code=response.status_code,
            has_next_page=response.has_next_page or len(items) >= per_page,
        )

    async def _fetch_json_contract(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        accept: Optional[str] = None,
    ) -> FetchResult[Any]:
        response = await self._request(path, params=params, accept=accept)
        if not response.is_ok:
            return response

        payload = response.data
        if payload is None or (isinstance(payload, (list, dict, str)) and len(payload) == 0):
            return FetchResult(state=FetchState.EMPTY, data=payload, status_code=response.status_code)
        return response

    async def _request(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        accept: Optional[str] = None,
        raw: bool = False,
    ) -> FetchResult[Any]:
        client = await self._ensure_client()
        headers = {"Accept": accept} if accept else {}

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type(_RetryableRequestError),
                reraise=True,
            ):
                with attempt:
                    try:
                        response = await client.get(path, params=params, headers=headers)
                    except httpx.TransportError as exc:
                        raise _RetryableRequestError(f"GitHub transport error: {exc}") from exc

                    if self._is_rate_limited(response):
                        wait_seconds = self._compute_rate_limit_wait(response.headers)
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                params=params,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                            ),
                        )
                        if wait_seconds > 0:
                            await asyncio.sleep(wait_seconds)
                        raise _RetryableRequestError(
                            f"GitHub rate limit encountered ({response.status_code})",
                            status_code=response.status_code,
                        )

                    if response.status_code >= 500:
                        raise _RetryableRequestError(
                            f"GitHub server error ({response.status_code})",
                            status_code=response.status_code,
                        )

                    response.raise_for_status()
                    return FetchResult(
                        state=FetchState.OK,
                        data=response.text if raw else response.json(),
                        status_code=response.status_code,
                        has_next_page="next" in response.links,
                    )
        except _RetryableRequestError as exc:
            logger.warning(
                "GitHub request failed after retries",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=exc.status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=exc.status_code)
        except httpx.HTTPError as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=status_code)
        except ValueError as exc:
            logger.warning(
                "GitHub response was not valid JSON",
                extra=sanitize_log_extra(path=path, error=str(exc)),
            )
            return FetchResult(state=FetchState.FAILED, error=f"Invalid JSON payload: {exc}")

        return FetchResult(state=FetchState.FAILED, error="Unknown GitHub request failure")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code != 403:
            return False
        if response.headers.get("x-ratelimit-remaining") == "0":
            return True
        return "rate limit" in response.text.lower()

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return min(max(float(retry_after), 0.0), self._max_rate_limit_wait_seconds)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                wait_seconds = int(reset_raw) - int(time.time()) + self._rate_limit_buffer_seconds
                return float(min(max(wait_seconds, 0), self._max_rate_limit_wait_seconds))
            except ValueError:
                pass

        return self._backoff_base_seconds
