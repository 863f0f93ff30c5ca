"""Trust store: system roots or a caller-supplied CA bundle, never both."""

import logging
import ssl
from dataclasses import dataclass
from typing import Callable

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from src.errors import FormatError, TrustStoreError

from . import pem
from .identity import read_file

logger = logging.getLogger(__name__)

_CERT_LABELS = ("CERTIFICATE", "X509 CERTIFICATE")


@dataclass(frozen=True)
class TrustStore:
    certificates: tuple[x509.Certificate, ...] = ()
    use_system_roots: bool = False

    def __post_init__(self):
        if self.use_system_roots == bool(self.certificates):
            raise ValueError("a trust store is either system roots or a CA bundle")

    def load_into(self, context: ssl.SSLContext) -> None:
        if self.use_system_roots:
            context.load_default_certs(ssl.Purpose.SERVER_AUTH)
        else:
            context.load_verify_locations(cadata=b"".join(
                c.public_bytes(serialization.Encoding.DER) for c in self.certificates
            ))


def load_system_roots() -> TrustStore:
    """Use the platform's default CA roots.

    Raises TrustStoreError if OpenSSL knows no default location and the
    platform store yields no CA certificates.
    """
    paths = ssl.get_default_verify_paths()
    # An existing but empty capath still counts as a usable system pool.
    if paths.cafile or paths.capath:
        return TrustStore(use_system_roots=True)

    probe = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        probe.load_default_certs(ssl.Purpose.SERVER_AUTH)
    except ssl.SSLError as e:
        raise TrustStoreError(f"unable to load system trust roots: {e}") from e
    if not probe.cert_store_stats().get("x509_ca"):
        raise TrustStoreError("unable to retrieve system trust roots: none available")
    return TrustStore(use_system_roots=True)


def parse_bundle(data: bytes, source: str = "<bundle>") -> TrustStore:
    certs = []
    for block in pem.iter_blocks(data):
        if block.label not in _CERT_LABELS:
            continue
        try:
            certs.append(x509.load_der_x509_certificate(block.body))
        except ValueError:
            logger.debug("Skipping unparsable certificate block in %s", source)
    if not certs:
        raise FormatError(f"no valid CA certificates in {source}")
    return TrustStore(certificates=tuple(certs))


def build_trust_store(
    ca_path: str = "",
    system_roots: Callable[[], TrustStore] = load_system_roots,
) -> TrustStore:
    """System roots when ``ca_path`` is empty, else the bundle at ``ca_path``."""
    if not ca_path:
        store = system_roots()
        logger.info("Using system trust roots")
        return store

    store = parse_bundle(read_file(ca_path), ca_path)
    logger.info("Loaded %d CA certificate(s) from %s", len(store.certificates), ca_path)
    return store
