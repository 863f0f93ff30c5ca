"""Client SSLContext assembly: identity + trust store + hostname policy."""

import logging
import ssl

from .identity import TLSIdentity
from .trust import TrustStore

logger = logging.getLogger(__name__)


class PinnedHostnameContext(ssl.SSLContext):
    """SSLContext that verifies the server against one fixed name.

    Drivers pass the dialed host (often an IP) as ``server_hostname``;
    this context substitutes ``expected_hostname`` in every handshake.
    """

    expected_hostname = ""

    def wrap_bio(self, incoming, outgoing, server_side=False, server_hostname=None, session=None):
        return super().wrap_bio(
            incoming, outgoing, server_side=server_side,
            server_hostname=self.expected_hostname, session=session,
        )

    def wrap_socket(self, sock, server_side=False, do_handshake_on_connect=True,
                    suppress_ragged_eofs=True, server_hostname=None, session=None):
        return super().wrap_socket(
            sock, server_side=server_side,
            do_handshake_on_connect=do_handshake_on_connect,
            suppress_ragged_eofs=suppress_ragged_eofs,
            server_hostname=self.expected_hostname, session=session,
        )


def build_client_context(
    identity: TLSIdentity,
    trust_store: TrustStore,
    expected_hostname: str = "",
) -> ssl.SSLContext:
    """Build the TLS client configuration used by every pooled connection.

    With ``expected_hostname`` the server certificate must chain to the
    trust store and name that host. Without it, server verification is
    switched off entirely while the client certificate is still presented.
    """
    if expected_hostname:
        context = PinnedHostnameContext(ssl.PROTOCOL_TLS_CLIENT)
        context.expected_hostname = expected_hostname
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.warning(
            "No expected server hostname configured: server certificate verification "
            "is DISABLED; connections will accept any server (client certificate still sent)"
        )

    trust_store.load_into(context)
    identity.load_into(context)
    return context
