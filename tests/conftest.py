"""Shared fixtures: a throwaway PKI written to tmp_path and a matching descriptor."""

import pytest

from src.config import ConnectionDescriptor
from tests.tlsutil import (
    PASSPHRASE,
    SERVER_NAME,
    Pki,
    cert_pem,
    legacy_encrypted_pem,
    make_cert,
    make_key,
    plain_pem,
)


@pytest.fixture
def pki(tmp_path) -> Pki:
    ca_key = make_key()
    ca_cert = make_cert("Test Root CA", ca_key, ca=True)
    client_key = make_key()
    client_cert = make_cert("svc-client", client_key, ca_cert, ca_key, client=True)
    server_key = make_key()
    server_cert = make_cert("db", server_key, ca_cert, ca_key, server_names=[SERVER_NAME])

    ca_file = tmp_path / "ca.pem"
    ca_file.write_bytes(cert_pem(ca_cert))
    client_cert_file = tmp_path / "client.crt"
    client_cert_file.write_bytes(cert_pem(client_cert))
    client_key_file = tmp_path / "client.key"
    client_key_file.write_bytes(legacy_encrypted_pem(client_key, PASSPHRASE))
    server_cert_file = tmp_path / "server.crt"
    server_cert_file.write_bytes(cert_pem(server_cert))
    server_key_file = tmp_path / "server.key"
    server_key_file.write_bytes(plain_pem(server_key))

    return Pki(
        root=tmp_path, ca_cert=ca_cert, ca_key=ca_key,
        client_cert=client_cert, client_key=client_key,
        server_cert=server_cert, server_key=server_key,
        ca_file=ca_file, client_cert_file=client_cert_file, client_key_file=client_key_file,
        server_cert_file=server_cert_file, server_key_file=server_key_file,
    )


@pytest.fixture
def descriptor(pki) -> ConnectionDescriptor:
    return ConnectionDescriptor(
        db_name="app",
        db_host="127.0.0.1",
        db_user="svc",
        db_password="p@ss/word",
        ssl_mode="require",
        ssl_cert_file=str(pki.client_cert_file),
        ssl_key_file=str(pki.client_key_file),
        ssl_key_passphrase=PASSPHRASE,
        server_port=8080,
        db_port=5432,
        max_conns=10,
        ssl_ca_file=str(pki.ca_file),
        ssl_hostname=SERVER_NAME,
    )
