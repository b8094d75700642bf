"""MyGo supplier API clients."""

from mygo_mcp.clients.base_client import BaseAPIClient, RetryPolicy, RetryState
from mygo_mcp.clients.mygo_client import MyGoClient, SearchSession

__all__ = ["BaseAPIClient", "MyGoClient", "RetryPolicy", "RetryState", "SearchSession"]
