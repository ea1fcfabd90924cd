"""HTTP request layer."""

from crawldash.http.client import ApiClient
from crawldash.http.endpoints import API_ENDPOINTS
from crawldash.http.transport import BaseHttpTransport, HttpRequest, HttpResponse, RequestsHttpTransport

__all__ = [
    "ApiClient",
    "API_ENDPOINTS",
    "BaseHttpTransport",
    "HttpRequest",
    "HttpResponse",
    "RequestsHttpTransport",
]
