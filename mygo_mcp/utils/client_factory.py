"""
Factory for the shared MyGo client and response cache.

Tools call these accessors instead of constructing clients so that all calls
reuse one connection pool and one cache.
"""

from mygo_mcp.clients.mygo_client import MyGoClient
from mygo_mcp.config.settings import Settings, get_settings
from mygo_mcp.utils.cache_manager import SupplierCacheManager

_client: MyGoClient | None = None
_cache: SupplierCacheManager | None = None


def create_mygo_client(settings: Settings | None = None) -> MyGoClient:
    """
    Get the shared MyGo client, creating it on first use.

    Args:
        settings: Optional settings; defaults to the global settings

    Returns:
        MyGoClient instance
    """
    global _client
    if _client is None:
        _client = MyGoClient(settings=settings or get_settings())
    return _client


def get_cache_manager(settings: Settings | None = None) -> SupplierCacheManager | None:
    """Get the shared cache, or None when caching is disabled."""
    global _cache
    settings = settings or get_settings()
    if not settings.enable_cache:
        return None
    if _cache is None:
        _cache = SupplierCacheManager(
            max_memory_size=settings.cache_max_memory,
            ttl_overrides={
                "hotel_search": settings.cache_ttl,
                "cities": settings.cities_cache_ttl,
            },
        )
    return _cache


async def close_clients() -> None:
    """Close the shared client and cache."""
    global _client, _cache
    if _client is not None:
        await _client.close()
        _client = None
    if _cache is not None:
        await _cache.close()
        _cache = None
