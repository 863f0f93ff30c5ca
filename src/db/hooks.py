"""Post-connect hooks run once per new physical connection."""

import logging

import asyncpg

from src.errors import ServerStateError

from .connection import PostConnectHook

logger = logging.getLogger(__name__)


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def set_search_path(*schemas: str) -> PostConnectHook:
    """Hook that sets ``search_path`` on every new connection."""
    if not schemas:
        raise ValueError("set_search_path needs at least one schema")
    statement = "SET search_path TO " + ", ".join(_quote_ident(s) for s in schemas)

    async def hook(conn: asyncpg.Connection) -> None:
        await conn.execute(statement)

    return hook


def require_server_version(major: int) -> PostConnectHook:
    """Hook that rejects servers older than PostgreSQL ``major``."""

    async def hook(conn: asyncpg.Connection) -> None:
        version = conn.get_server_version()
        if version.major < major:
            raise ServerStateError(
                f"server version {version.major}.{version.minor} is older than required {major}"
            )
        logger.debug("Server version %s.%s accepted", version.major, version.minor)

    return hook


def chain_hooks(*hooks: PostConnectHook) -> PostConnectHook:
    """Run hooks in order; the first failure aborts the connection."""

    async def hook(conn: asyncpg.Connection) -> None:
        for h in hooks:
            await h(conn)

    return hook
