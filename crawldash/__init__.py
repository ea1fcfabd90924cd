"""Session-aware real-time client core for the crawl dashboard."""

from crawldash.client import CrawlDashClient
from crawldash.config import ClientSettings, get_settings

__all__ = ["CrawlDashClient", "ClientSettings", "get_settings"]
