from .connection import PoolConfig, create_pool, open_pool, parse_dsn, render_dsn
from .hooks import chain_hooks, require_server_version, set_search_path

__all__ = [
    "PoolConfig",
    "create_pool",
    "open_pool",
    "parse_dsn",
    "render_dsn",
    "chain_hooks",
    "require_server_version",
    "set_search_path",
]
