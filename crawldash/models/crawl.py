from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class StartCrawlRequest(BaseModel):
    """Body of a crawl start request."""

    url: str
    max_depth: Optional[int] = Field(default=None, ge=0, le=50)
    max_pages: Optional[int] = Field(default=None, ge=1, le=10000)


class BulkActionRequest(BaseModel):
    task_ids: List[int] = Field(alias="taskIds", min_length=1)

    model_config = {"populate_by_name": True}


class TasksQuery(BaseModel):
    """Pagination and filter parameters for the task listing."""

    page: Optional[int] = Field(default=None, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)
    status: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
