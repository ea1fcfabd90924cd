"""REST facades used by dashboard code."""

from crawldash.services.auth_service import AuthService
from crawldash.services.crawl_service import CrawlService

__all__ = ["AuthService", "CrawlService"]
