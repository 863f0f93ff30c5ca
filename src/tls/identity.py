"""
Encrypted client identity loading.

Reads a PEM certificate and a passphrase-protected PEM private key,
decrypts the key in memory and binds the two into an immutable
TLSIdentity. Decrypted key material never reaches disk or the logs.
"""

import logging
import os
import secrets
import ssl
import tempfile
from typing import Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from src.errors import DecryptionError, FileReadError, FormatError, KeyCertMismatchError

from . import pem

logger = logging.getLogger(__name__)

# Legacy OpenSSL "Proc-Type: 4,ENCRYPTED" ciphers: DEK-Info name -> (algorithm, key length).
# TripleDES with an 8-byte key is single DES.
_LEGACY_CIPHERS = {
    "DES-CBC": (TripleDES, 8),
    "DES-EDE3-CBC": (TripleDES, 24),
    "AES-128-CBC": (algorithms.AES, 16),
    "AES-192-CBC": (algorithms.AES, 24),
    "AES-256-CBC": (algorithms.AES, 32),
}

LEGACY_PEM_CIPHERS = frozenset(_LEGACY_CIPHERS)

Passphrase = Union[str, bytes]


def read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FileReadError(path, e.strerror or str(e)) from e


def _spki(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class TLSIdentity:
    """A client certificate chain bound to its decrypted private key.

    Immutable once built. The key object stays private; use
    ``load_into`` to hand the identity to an ``ssl.SSLContext``.
    """

    __slots__ = ("_chain", "_key")

    def __init__(self, chain: tuple[x509.Certificate, ...], private_key):
        if not chain:
            raise KeyCertMismatchError("certificate chain is empty")
        if _spki(chain[0].public_key()) != _spki(private_key.public_key()):
            raise KeyCertMismatchError("private key does not match certificate public key")
        object.__setattr__(self, "_chain", tuple(chain))
        object.__setattr__(self, "_key", private_key)

    def __setattr__(self, name, value):
        raise AttributeError("TLSIdentity is immutable")

    def __repr__(self) -> str:
        return f"TLSIdentity(subject={self.certificate.subject.rfc4514_string()!r})"

    @property
    def certificate(self) -> x509.Certificate:
        return self._chain[0]

    @property
    def chain(self) -> tuple[x509.Certificate, ...]:
        return self._chain

    def public_key(self):
        return self._key.public_key()

    def load_into(self, context: ssl.SSLContext) -> None:
        """Install the identity as the context's client certificate.

        OpenSSL only loads keys from files, so the key is re-wrapped under a
        one-time random passphrase in a private temp dir that is removed
        before returning.
        """
        one_time = secrets.token_hex(32).encode("ascii")
        wrapped_key = self._key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(one_time),
        )
        chain_pem = b"".join(
            c.public_bytes(serialization.Encoding.PEM) for c in self._chain
        )

        with tempfile.TemporaryDirectory(prefix="pgtls-") as tmp:
            cert_path = os.path.join(tmp, "client.crt")
            key_path = os.path.join(tmp, "client.key")
            for path, data in ((cert_path, chain_pem), (key_path, wrapped_key)):
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
            context.load_cert_chain(cert_path, key_path, password=one_time)


def _as_bytes(passphrase: Passphrase) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def derive_legacy_key(passphrase: bytes, salt: bytes, length: int) -> bytes:
    """OpenSSL EVP_BytesToKey with MD5 and a single iteration."""
    derived = b""
    block = b""
    while len(derived) < length:
        digest = hashes.Hash(hashes.MD5())
        digest.update(block + passphrase + salt)
        block = digest.finalize()
        derived += block
    return derived[:length]


def _decrypt_legacy(block: pem.PemBlock, passphrase: bytes) -> bytes:
    """Decrypt a Proc-Type/DEK-Info block and return the plaintext DER."""
    cipher_name = block.dek_cipher
    if cipher_name not in _LEGACY_CIPHERS:
        raise DecryptionError(f"unsupported key encryption cipher {cipher_name or '(none)'}")
    algorithm, key_length = _LEGACY_CIPHERS[cipher_name]
    block_size = algorithm.block_size // 8

    try:
        iv = bytes.fromhex(block.headers["DEK-Info"].split(",", 1)[1].strip())
    except (IndexError, ValueError):
        raise DecryptionError(f"malformed DEK-Info header for {cipher_name}") from None
    if len(iv) != block_size:
        raise DecryptionError(f"incorrect IV size for {cipher_name}")
    if not block.body or len(block.body) % block_size:
        raise DecryptionError("encrypted key length is not a multiple of the cipher block size")

    key = derive_legacy_key(passphrase, iv[:8], key_length)
    decryptor = Cipher(algorithm(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(block.body) + decryptor.finalize()

    # Bad padding is how a wrong passphrase usually shows up.
    unpadder = padding.PKCS7(algorithm.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError:
        raise DecryptionError("cannot decrypt private key: incorrect passphrase") from None


def decrypt_key_block(block: pem.PemBlock, passphrase: Passphrase) -> bytes:
    """Decrypt an encrypted key block and return it as header-free PEM.

    Legacy blocks keep their decrypted bytes and label unchanged; PKCS#8
    blocks come back as unencrypted ``PRIVATE KEY``.
    """
    # The passphrase is always applied, even when empty.
    secret = _as_bytes(passphrase)

    if block.is_legacy_encrypted:
        der = _decrypt_legacy(block, secret)
        try:
            serialization.load_der_private_key(der, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise DecryptionError("cannot decrypt private key: incorrect passphrase") from e
        return pem.encode_block(block.label, der)

    if block.label != "ENCRYPTED PRIVATE KEY":
        raise DecryptionError(f"{block.label} block is not encrypted")

    try:
        key = serialization.load_pem_private_key(block.raw, password=secret)
        der = key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecryptionError(f"cannot decrypt private key: {e}") from e
    return pem.encode_block("PRIVATE KEY", der)


def load_identity(cert_path: str, key_path: str, passphrase: Passphrase) -> TLSIdentity:
    """Load a certificate and its encrypted key into a TLSIdentity."""
    key_data = read_file(key_path)
    cert_data = read_file(cert_path)

    block = pem.first_block(key_data)
    if block is None:
        raise FormatError(f"no PEM block found in key file {key_path}")

    key_pem = decrypt_key_block(block, passphrase)

    try:
        chain = tuple(x509.load_pem_x509_certificates(cert_data))
    except ValueError as e:
        raise KeyCertMismatchError(f"cannot parse certificate {cert_path}: {e}") from e
    try:
        private_key = serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyCertMismatchError(f"cannot parse decrypted key from {key_path}: {e}") from e

    identity = TLSIdentity(chain, private_key)
    logger.info("Loaded TLS client identity | subject=%s", identity.certificate.subject.rfc4514_string())
    return identity
