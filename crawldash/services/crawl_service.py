"""Crawl task operations."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from crawldash.http import ApiClient
from crawldash.http import endpoints
from crawldash.models.crawl import BulkActionRequest, StartCrawlRequest, TasksQuery


class CrawlService:
    def __init__(self, api: ApiClient) -> None:
        self._api = api

    async def start_crawl(self, url: str, *, max_depth: Optional[int] = None, max_pages: Optional[int] = None) -> Any:
        body = StartCrawlRequest(url=url, max_depth=max_depth, max_pages=max_pages)
        return await self._api.post(endpoints.CRAWL, body.model_dump(exclude_none=True))

    async def list_tasks(self, query: Optional[TasksQuery] = None, **filters: Any) -> Any:
        query = query or TasksQuery(**filters)
        return await self._api.get_with_retry(endpoints.CRAWL, params=query.model_dump(exclude_none=True))

    async def get_task_status(self, task_id: int) -> Any:
        return await self._api.get_with_retry(endpoints.task(task_id))

    async def stop_crawl(self, task_id: int) -> Any:
        return await self._api.put(endpoints.task_stop(task_id))

    async def get_results(self, task_id: int) -> Any:
        return await self._api.get_with_retry(endpoints.task_results(task_id))

    async def get_links(
        self,
        task_id: int,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        link_type: Optional[str] = None,
    ) -> Any:
        params = {"page": page, "limit": limit, "type": link_type}
        return await self._api.get_with_retry(endpoints.task_links(task_id), params=params)

    async def delete_task(self, task_id: int) -> Any:
        return await self._api.delete(endpoints.task(task_id))

    async def bulk_delete(self, task_ids: Iterable[int]) -> Any:
        return await self._bulk(endpoints.BULK_DELETE, task_ids)

    async def bulk_rerun(self, task_ids: Iterable[int]) -> Any:
        return await self._bulk(endpoints.BULK_RERUN, task_ids)

    async def bulk_stop(self, task_ids: Iterable[int]) -> Any:
        return await self._bulk(endpoints.BULK_STOP, task_ids)

    async def bulk_export(self, task_ids: Iterable[int]) -> Any:
        return await self._bulk(endpoints.BULK_EXPORT, task_ids)

    async def _bulk(self, path: str, task_ids: Iterable[int]) -> Any:
        body = BulkActionRequest(task_ids=list(task_ids))
        return await self._api.post(path, body.model_dump(by_alias=True))

    async def get_stats(self) -> Any:
        return await self._api.get_with_retry(endpoints.STATS)

    async def get_user_stats(self) -> Any:
        return await self._api.get_with_retry(endpoints.USER_STATS)

    async def health_check(self) -> Any:
        return await self._api.get(endpoints.HEALTH, authenticated=False)

    async def get_version(self) -> Any:
        return await self._api.get(endpoints.VERSION, authenticated=False)
