"""
Connection descriptor: everything needed to open the TLS pool.

Loaded from environment variables (optionally via a .env file) or from a
JSON config file, then validated.
"""

import json
import os
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from src.errors import ConfigError, FileReadError

SSL_MODES = ("disable", "allow", "prefer", "require", "verify-ca", "verify-full")

# Environment variable for each descriptor field.
ENV_VARS = {
    "db_name": "DB_NAME",
    "db_host": "DB_HOST",
    "db_user": "DB_USER",
    "db_password": "DB_PASSWORD",
    "ssl_mode": "SSL_MODE",
    "ssl_cert_file": "SSL_CERT_FILE",
    "ssl_key_file": "SSL_KEY_FILE",
    "ssl_key_passphrase": "SSL_KEY_PASSPHRASE",
    "ssl_ca_file": "SSL_CA_FILE",
    "ssl_hostname": "SSL_HOSTNAME",
    "server_port": "SERVER_PORT",
    "db_port": "DB_PORT",
    "max_conns": "MAX_CONNS",
}

# Key names used by older JSON config files.
LEGACY_KEYS = {
    "DbName": "db_name",
    "DbHost": "db_host",
    "DbUser": "db_user",
    "Password": "db_password",
    "SSLMode": "ssl_mode",
    "SSLCertFile": "ssl_cert_file",
    "SSLKeyFile": "ssl_key_file",
    "SSLKeyFilePassPhrase": "ssl_key_passphrase",
    "SSLCAFile": "ssl_ca_file",
    "SSLHostname": "ssl_hostname",
    "ServerPort": "server_port",
    "DbPort": "db_port",
    "MaxConns": "max_conns",
}

OPTIONAL_FIELDS = ("ssl_ca_file", "ssl_hostname")
INT_FIELDS = ("server_port", "db_port", "max_conns")


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Database target, credentials, pool limits and TLS material paths."""

    db_name: str
    db_host: str
    db_user: str
    db_password: str = field(repr=False)
    ssl_mode: str
    ssl_cert_file: str
    ssl_key_file: str
    ssl_key_passphrase: str = field(repr=False)
    server_port: int
    db_port: int
    max_conns: int
    ssl_ca_file: str = ""
    ssl_hostname: str = ""

    def validate(self) -> "ConnectionDescriptor":
        problems = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in INT_FIELDS:
                if not isinstance(value, int) or isinstance(value, bool):
                    problems.append(f"{f.name} must be an integer")
            elif not isinstance(value, str):
                problems.append(f"{f.name} must be a string")
            elif f.name not in OPTIONAL_FIELDS and not value:
                problems.append(f"{f.name} is required")

        if not problems:
            for name in ("server_port", "db_port"):
                if not 1 <= getattr(self, name) <= 65535:
                    problems.append(f"{name} must be between 1 and 65535")
            if not 1 <= self.max_conns <= 255:
                problems.append("max_conns must be between 1 and 255")
            if self.ssl_mode not in SSL_MODES:
                problems.append(f"ssl_mode must be one of {', '.join(SSL_MODES)}")

        if problems:
            raise ConfigError("invalid connection descriptor: " + "; ".join(problems))
        return self


def _to_int(name: str, raw: Any) -> int:
    if isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def from_mapping(values: Mapping[str, Any]) -> ConnectionDescriptor:
    """Build and validate a descriptor from snake_case (or legacy) keys."""
    data = {LEGACY_KEYS.get(k, k): v for k, v in values.items()}
    known = {f.name for f in fields(ConnectionDescriptor)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

    missing = sorted(
        name for name in known - set(data) if name not in OPTIONAL_FIELDS
    )
    if missing:
        raise ConfigError(f"missing config keys: {', '.join(missing)}")

    for name in INT_FIELDS:
        data[name] = _to_int(name, data[name])
    for name in OPTIONAL_FIELDS:
        if data.get(name) is None:
            data[name] = ""

    return ConnectionDescriptor(**data).validate()


def from_env(environ: Mapping[str, str] = os.environ) -> ConnectionDescriptor:
    """Build a descriptor from DB_* / SSL_* / *_PORT / MAX_CONNS variables."""
    values = {}
    for name, var in ENV_VARS.items():
        if var in environ:
            values[name] = environ[var]
        elif name not in OPTIONAL_FIELDS:
            if name in INT_FIELDS:
                raise ConfigError(f"{var} must be set to an integer")
            values[name] = ""
    return from_mapping(values)


def from_file(path: str) -> ConnectionDescriptor:
    """Build a descriptor from a JSON object file."""
    try:
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise FileReadError(path, e.strerror or str(e)) from e

    try:
        values = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"can't parse config file {path}: {e}") from e
    if not isinstance(values, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return from_mapping(values)
