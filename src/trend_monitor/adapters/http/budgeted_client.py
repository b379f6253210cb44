"""HTTP client with per-source and global byte ceilings and conditional GETs."""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from loguru import logger

from trend_monitor.core.errors import BudgetExceededError

USER_AGENT = "trend-monitor/0.1 (+news collector)"
DEFAULT_TIMEOUT = 15.0


class GlobalByteBudget:
    """Byte counter shared by every source in one collector run."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.limit

    def would_exceed(self, size: int) -> bool:
        return self.used + size > self.limit

    def charge(self, size: int) -> None:
        self.used += size


@dataclass
class HttpResponse:
    """Budget-checked response."""

    not_modified: bool
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None
    bytes: int = 0


class BudgetedHttpClient:
    """Wrap one source's requests with byte budgets and cache validators.

    Validators are kept in memory; the caller reads ``validator_patch`` and
    persists it. Bytes are charged only after both ceilings are checked, so a
    rejected body is never counted.
    """

    def __init__(
        self,
        source_id: str,
        source_limit: int,
        global_budget: GlobalByteBudget,
        client: httpx.AsyncClient,
        validators: Optional[dict[str, dict[str, str]]] = None,
    ) -> None:
        self.source_id = source_id
        self.source_limit = source_limit
        self.global_budget = global_budget
        self._client = client
        self._validators: dict[str, dict[str, str]] = {
            key: dict(value) for key, value in (validators or {}).items()
        }
        self._bytes_used = 0

    @property
    def bytes_used(self) -> int:
        return self._bytes_used

    @property
    def validator_patch(self) -> dict[str, dict[str, str]]:
        return {key: dict(value) for key, value in self._validators.items()}

    def _check_open(self) -> None:
        if self.global_budget.exhausted:
            raise BudgetExceededError(
                BudgetExceededError.GLOBAL,
                self.source_id,
                {"used": self.global_budget.used, "limit": self.global_budget.limit},
            )
        if self._bytes_used >= self.source_limit:
            raise BudgetExceededError(
                BudgetExceededError.SOURCE,
                self.source_id,
                {"used": self._bytes_used, "limit": self.source_limit},
            )

    def _conditional_headers(self, cache_key: str) -> dict[str, str]:
        validator = self._validators.get(cache_key) or {}
        headers = {}
        if validator.get("etag"):
            headers["If-None-Match"] = validator["etag"]
        if validator.get("lastModified"):
            headers["If-Modified-Since"] = validator["lastModified"]
        return headers

    async def request(
        self,
        url: str,
        *,
        kind: str = "json",
        cache_key: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> HttpResponse:
        """GET ``url`` and return its decoded body (``kind`` is json or text)."""
        self._check_open()
        key = cache_key or url

        request_headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/json" if kind == "json" else "*/*",
            **self._conditional_headers(key),
            **(headers or {}),
        }
        response = await self._client.get(url, params=params, headers=request_headers)

        if response.status_code == 304:
            logger.debug(f"{self.source_id}: not modified {url}")
            return HttpResponse(not_modified=True, status=304, headers=dict(response.headers))

        response.raise_for_status()

        size = len(response.content)
        if self._bytes_used + size > self.source_limit:
            raise BudgetExceededError(
                BudgetExceededError.SOURCE,
                self.source_id,
                {"used": self._bytes_used, "incoming": size, "limit": self.source_limit},
            )
        if self.global_budget.would_exceed(size):
            raise BudgetExceededError(
                BudgetExceededError.GLOBAL,
                self.source_id,
                {"used": self.global_budget.used, "incoming": size, "limit": self.global_budget.limit},
            )

        self._bytes_used += size
        self.global_budget.charge(size)

        validator = {}
        if response.headers.get("etag"):
            validator["etag"] = response.headers["etag"]
        if response.headers.get("last-modified"):
            validator["lastModified"] = response.headers["last-modified"]
        if validator:
            self._validators[key] = validator

        if kind == "json":
            try:
                data = json.loads(response.text)
            except ValueError as e:
                raise ValueError(f"json_parse_failed({self.source_id}): {e}") from e
        else:
            data = response.text

        return HttpResponse(
            not_modified=False,
            status=response.status_code,
            headers=dict(response.headers),
            data=data,
            bytes=size,
        )

    async def get_json(self, url: str, **kwargs: Any) -> HttpResponse:
        return await self.request(url, kind="json", **kwargs)

    async def get_text(self, url: str, **kwargs: Any) -> HttpResponse:
        return await self.request(url, kind="text", **kwargs)
