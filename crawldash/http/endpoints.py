"""REST endpoint paths of the crawl API."""

from __future__ import annotations

from typing import Final

LOGIN: Final[str] = "/api/v1/auth/login"
REGISTER: Final[str] = "/api/v1/auth/register"
REFRESH_TOKEN: Final[str] = "/api/v1/auth/refresh"
LOGOUT: Final[str] = "/api/v1/auth/logout"
PROFILE: Final[str] = "/api/v1/user/profile"
CHANGE_PASSWORD: Final[str] = "/api/v1/user/password"

CRAWL: Final[str] = "/api/v1/crawl"
BULK_DELETE: Final[str] = "/api/v1/crawl/bulk-delete"
BULK_RERUN: Final[str] = "/api/v1/crawl/bulk-rerun"
BULK_STOP: Final[str] = "/api/v1/crawl/bulk-stop"
BULK_EXPORT: Final[str] = "/api/v1/crawl/bulk-export"

STATS: Final[str] = "/api/v1/stats"
USER_STATS: Final[str] = "/api/v1/stats/user"

HEALTH: Final[str] = "/health"
VERSION: Final[str] = "/version"


def task(task_id: int) -> str:
    return f"{CRAWL}/{int(task_id)}"


def task_stop(task_id: int) -> str:
    return f"{task(task_id)}/stop"


def task_results(task_id: int) -> str:
    return f"{task(task_id)}/results"


def task_links(task_id: int) -> str:
    return f"{task(task_id)}/links"


API_ENDPOINTS: Final[dict[str, str]] = {
    "login": LOGIN,
    "register": REGISTER,
    "refresh_token": REFRESH_TOKEN,
    "logout": LOGOUT,
    "profile": PROFILE,
    "change_password": CHANGE_PASSWORD,
    "crawl": CRAWL,
    "bulk_delete": BULK_DELETE,
    "bulk_rerun": BULK_RERUN,
    "bulk_stop": BULK_STOP,
    "bulk_export": BULK_EXPORT,
    "stats": STATS,
    "user_stats": USER_STATS,
    "health": HEALTH,
    "version": VERSION,
}
