"""Database connection pool over mutual TLS."""

import asyncio
import logging
import ssl
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qs, quote, unquote, urlsplit

import asyncpg

from src.config import ConnectionDescriptor
from src.config.descriptor import SSL_MODES
from src.errors import ConfigError, PoolConnectionError
from src.tls import build_client_context, build_trust_store, load_identity, load_system_roots

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 60.0

PostConnectHook = Callable[[asyncpg.Connection], Awaitable[None]]

# Failures that mean "could not reach or handshake with the server".
_CONNECT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)


@dataclass(frozen=True)
class PoolConfig:
    """Everything handed to asyncpg.create_pool, once."""

    host: str
    port: int
    user: str
    password: str
    database: str
    ssl_mode: str
    max_conns: int
    min_conns: int = 1
    connect_timeout: float = CONNECT_TIMEOUT
    prefer_simple_protocol: bool = True
    ssl_context: Optional[ssl.SSLContext] = None
    after_connect: Optional[PostConnectHook] = None

    def __repr__(self) -> str:
        return (
            f"PoolConfig(host={self.host!r}, port={self.port}, user={self.user!r}, "
            f"database={self.database!r}, ssl_mode={self.ssl_mode!r}, max_conns={self.max_conns})"
        )

    def pool_kwargs(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
            "ssl": self.ssl_context,
            # Plain TCP dial, then TLS negotiated with SSLRequest.
            "direct_tls": False,
            "min_size": self.min_conns,
            "max_size": self.max_conns,
            "timeout": self.connect_timeout,
            "init": self.after_connect,
            # Prefer the simple query protocol: no server-side prepared statement cache.
            "statement_cache_size": 0 if self.prefer_simple_protocol else 100,
        }


def render_dsn(descriptor: ConnectionDescriptor) -> str:
    """Build the PostgreSQL connection string for a descriptor."""
    host = descriptor.db_host
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return "postgres://{user}:{password}@{host}:{port}/{db}?sslmode={mode}&pool_max_conns={max_conns}".format(
        user=quote(descriptor.db_user, safe=""),
        password=quote(descriptor.db_password, safe=""),
        host=host,
        port=descriptor.db_port,
        db=quote(descriptor.db_name, safe=""),
        mode=descriptor.ssl_mode,
        max_conns=descriptor.max_conns,
    )


def parse_dsn(dsn: str) -> PoolConfig:
    """Parse a connection string into a PoolConfig (without TLS or hook)."""
    try:
        parts = urlsplit(dsn)
        port = parts.port
    except ValueError as e:
        raise ConfigError(f"malformed connection string: {e}") from e

    if parts.scheme not in ("postgres", "postgresql"):
        raise ConfigError(f"unsupported connection string scheme {parts.scheme!r}")
    if not parts.hostname:
        raise ConfigError("connection string has no host")
    if port is None:
        raise ConfigError("connection string has no port")
    database = unquote(parts.path.lstrip("/"))
    if not database:
        raise ConfigError("connection string has no database name")

    query = parse_qs(parts.query, keep_blank_values=True)
    ssl_mode = query.get("sslmode", ["prefer"])[-1]
    if ssl_mode not in SSL_MODES:
        raise ConfigError(f"invalid sslmode {ssl_mode!r}")
    try:
        max_conns = int(query.get("pool_max_conns", ["10"])[-1])
    except ValueError:
        raise ConfigError("pool_max_conns must be an integer") from None
    if max_conns < 1:
        raise ConfigError("pool_max_conns must be at least 1")

    return PoolConfig(
        host=parts.hostname,
        port=port,
        user=unquote(parts.username or ""),
        password=unquote(parts.password or ""),
        database=database,
        ssl_mode=ssl_mode,
        max_conns=max_conns,
    )


async def create_pool(config: PoolConfig) -> asyncpg.Pool:
    """Open the pool; never returns a half-initialized one.

    Errors raised by ``config.after_connect`` propagate as they are, even
    when they are asyncpg or OS errors; everything else that fails the
    connect is wrapped in PoolConnectionError.
    """
    hook_errors: list[BaseException] = []
    kwargs = config.pool_kwargs()
    hook = config.after_connect
    if hook is not None:
        async def init(conn: asyncpg.Connection) -> None:
            try:
                await hook(conn)
            except BaseException as e:
                hook_errors.append(e)
                raise

        kwargs["init"] = init

    pool = asyncpg.create_pool(**kwargs)
    try:
        await pool
    except BaseException as e:
        pool.terminate()
        if any(e is h for h in hook_errors) or not isinstance(e, _CONNECT_ERRORS):
            raise
        raise PoolConnectionError(
            f"cannot connect to {config.host}:{config.port}/{config.database}: {e}"
        ) from e
    logger.info(
        "PostgreSQL pool created | host=%s port=%s db=%s max_conns=%s",
        config.host, config.port, config.database, config.max_conns,
    )
    return pool


async def open_pool(
    descriptor: ConnectionDescriptor,
    post_connect_hook: Optional[PostConnectHook] = None,
    *,
    system_roots=load_system_roots,
) -> asyncpg.Pool:
    """Open a mutually authenticated TLS pool described by ``descriptor``.

    ``post_connect_hook`` runs once per new physical connection before the
    pool hands it out; its errors abort pool creation. ``system_roots``
    supplies the trust store when the descriptor has no CA file.

    If ``descriptor.ssl_hostname`` is empty the server certificate is NOT
    verified at all.
    """
    config = parse_dsn(render_dsn(descriptor))
    if config.ssl_mode == "disable":
        logger.warning("sslmode=disable ignored: client-certificate TLS is always used")

    trust_store = build_trust_store(descriptor.ssl_ca_file, system_roots)
    identity = load_identity(
        descriptor.ssl_cert_file, descriptor.ssl_key_file, descriptor.ssl_key_passphrase,
    )
    context = build_client_context(identity, trust_store, descriptor.ssl_hostname)

    config = replace(config, ssl_context=context, after_connect=post_connect_hook)
    return await create_pool(config)
