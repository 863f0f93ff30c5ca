from .context import PinnedHostnameContext, build_client_context
from .identity import TLSIdentity, load_identity
from .trust import TrustStore, build_trust_store, load_system_roots

__all__ = [
    "PinnedHostnameContext",
    "build_client_context",
    "TLSIdentity",
    "load_identity",
    "TrustStore",
    "build_trust_store",
    "load_system_roots",
]
