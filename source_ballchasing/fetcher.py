"""Rate-limited async client for the ballchasing API."""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_never, wait_none

from .config import SourceSettings
from .errors import FetchError, RateLimitedError
from .lib import json
from .lib.log import get_logger
from .limiter import RateLimiter
from .models import GroupSummary, Listing, PingResponse, ReplaySummary
from .state import TodoGroup

M = TypeVar("M", bound=BaseModel)

logger = get_logger(__name__)


def _log_rate_limited(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "delaying in response to 429 status",
        url=getattr(exc, "url", None),
        attempt=retry_state.attempt_number,
    )


class Fetcher:
    """Issues authenticated GETs, paced by a shared ``RateLimiter``.

    Pacing is proactive so that 429 responses stay rare. When one does come
    back the request is retried indefinitely, still behind the limiter. Any
    other non-200 status is fatal and raised as ``FetchError``.
    """

    def __init__(
        self,
        auth_token: str,
        settings: Optional[SourceSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._settings = settings or SourceSettings()
        self._limiter = limiter or RateLimiter(self._settings.request_interval)
        self._client = httpx.AsyncClient(
            headers={"Authorization": auth_token},
            timeout=self._settings.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def api_url(self, rel_path: str) -> str:
        return f"{self._settings.api_root}/{rel_path}"

    async def ping_server(self) -> PingResponse:
        """GET the api root to check authentication and learn the caller's steam id."""
        return await self.fetch_json(self.api_url(""), model=PingResponse)

    async def fetch_replay(self, replay_id: str) -> dict[str, Any]:
        doc = await self.fetch_json(self.api_url(f"replays/{replay_id}"))
        if not isinstance(doc, dict):
            raise FetchError(
                f"fetching replay {replay_id}: expected a JSON object, got {type(doc).__name__}",
                url=self.api_url(f"replays/{replay_id}"),
            )
        return doc

    async def fetch_replay_ids(self, group_id: str) -> list[ReplaySummary]:
        return await self._fetch_listing("replays", {"group": group_id}, ReplaySummary)

    async def fetch_child_groups(self, group_id: str) -> list[TodoGroup]:
        summaries = await self._fetch_listing("groups", {"group": group_id}, GroupSummary)
        return _todo_groups(summaries)

    async def fetch_creator_groups(self, creator_id: str) -> list[TodoGroup]:
        summaries = await self._fetch_listing("groups", {"creator": creator_id}, GroupSummary)
        return _todo_groups(summaries)

    async def _fetch_listing(self, rel_path: str, params: dict[str, Any], item_model: Type[M]) -> list[M]:
        url: Optional[str] = self.api_url(rel_path)
        query: Optional[dict[str, Any]] = {**params, "count": self._settings.page_size}
        seen: set[str] = set()
        items: list[M] = []
        while url is not None:
            seen.add(url)
            page = await self.fetch_json(url, query, model=Listing[item_model])
            items.extend(page.items)
            # ``next`` already carries the full query string
            url, query = page.next, None
            if url in seen:
                raise FetchError(f"listing {rel_path} returned a repeated next link", url=url)
        return items

    async def fetch_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        *,
        model: Optional[Type[M]] = None,
    ) -> Any:
        retryer = AsyncRetrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_never,
            wait=wait_none(),
            before_sleep=_log_rate_limited,
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                result = await self._get_once(url, params, model)
        return result

    async def _get_once(self, url: str, params: Optional[dict[str, Any]], model: Optional[Type[M]]) -> Any:
        # Do our own rate limiting, so that we can avoid 429 responses in the common case
        await self._limiter.until_ready()
        logger.debug("fetching url", url=url, params=params)
        try:
            resp = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise FetchError(f"fetching url failed: {exc}", url=url) from exc

        status = resp.status_code
        if status == httpx.codes.OK:
            try:
                data = json.loads(resp.content)
                return model.model_validate(data) if model is not None else data
            except (json.JSONDecodeError, ValidationError) as exc:
                raise FetchError(f"deserializing response body: {exc}", url=str(resp.url)) from exc
        if status == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimitedError("rate limited", url=str(resp.url), status=status, body=resp.text)
        raise FetchError("response error", url=str(resp.url), status=status, body=resp.text)


def _todo_groups(summaries: list[GroupSummary]) -> list[TodoGroup]:
    groups = (TodoGroup.from_summary(summary) for summary in summaries)
    return [group for group in groups if not group.is_done()]


__all__ = ["Fetcher"]
