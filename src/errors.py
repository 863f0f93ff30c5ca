"""Errors raised while bootstrapping the TLS connection pool.

Every failure is terminal for the initialization attempt: callers abort
startup or retry the whole bootstrap.
"""


class PoolSetupError(Exception):
    """Base class for all pool bootstrap failures."""


class FileReadError(PoolSetupError, OSError):
    """A certificate, key, bundle or config file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"cannot read {path}: {reason}")
        self.path = path


class FormatError(PoolSetupError):
    """Malformed PEM input, or a CA bundle with no usable certificates."""


class DecryptionError(PoolSetupError):
    """Wrong passphrase, unencrypted key, or unsupported cipher."""


class KeyCertMismatchError(PoolSetupError):
    """The decrypted key does not belong to the certificate, or either won't parse."""


class TrustStoreError(PoolSetupError):
    """The system trust roots are unavailable."""


class ConfigError(PoolSetupError):
    """Malformed connection descriptor or connection string."""


class PoolConnectionError(PoolSetupError):
    """No connection could be established (transport, TLS handshake or timeout)."""


class ServerStateError(PoolSetupError):
    """A post-connect hook rejected the server it connected to."""
