"""
Entry point: Open the mutual-TLS PostgreSQL pool and check it works.

Usage:
    python main.py                      # descriptor from env / .env
    python main.py --config db.json
    python main.py --search-path app public --min-server-version 14
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from src.config import from_env, from_file
from src.db import chain_hooks, open_pool, require_server_version, set_search_path
from src.errors import PoolSetupError


def build_hook(args):
    hooks = []
    if args.search_path:
        hooks.append(set_search_path(*args.search_path))
    if args.min_server_version:
        hooks.append(require_server_version(args.min_server_version))
    if not hooks:
        return None
    return chain_hooks(*hooks)


async def run(args) -> int:
    try:
        descriptor = from_file(args.config) if args.config else from_env()
    except PoolSetupError as e:
        print(f"❌ Bad configuration: {e}")
        return 1

    print(f"\n🔌 Connecting to {descriptor.db_host}:{descriptor.db_port}/{descriptor.db_name} over TLS...")
    if not descriptor.ssl_hostname:
        print("⚠️  SSL_HOSTNAME not set: the server's certificate will NOT be verified")

    try:
        pool = await open_pool(descriptor, build_hook(args))
    except PoolSetupError as e:
        print(f"❌ Failed to connect: {e}")
        return 1

    try:
        version = await pool.fetchval("SELECT version()")
        print(f"✅ Connected | pool size={pool.get_size()} max={pool.get_max_size()}")
        print(f"   {version}")
    finally:
        await pool.close()
    print("\n👋 Done.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Open a mutual-TLS PostgreSQL pool")
    parser.add_argument("--config", type=str, help="JSON config file (default: environment)")
    parser.add_argument("--search-path", nargs="+", metavar="SCHEMA", help="Schemas to set on each connection")
    parser.add_argument("--min-server-version", type=int, help="Reject servers older than this major version")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
