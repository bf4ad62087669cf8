"""Process-lifetime self-signed TLS certificate for the loopback server.

The key pair and certificate are generated once per process and never
persisted. The public certificate PEM is exported so the embedding client can
install it as a trusted root for the local origin.
"""

from __future__ import annotations

import datetime
import ipaddress
import logging
import ssl
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

_log = logging.getLogger("chatmedia")

SERVER_NAME = "localhost"
VALIDITY = datetime.timedelta(days=365)


@dataclass(frozen=True)
class CertificateMaterial:
    cert_pem: bytes
    key_pem: bytes
    not_before: datetime.datetime
    not_after: datetime.datetime

    def server_context(self) -> ssl.SSLContext:
        """Build a server TLS context pinned to this certificate.

        `load_cert_chain` only accepts paths, so the PEMs live in a private
        temporary directory for the duration of the call.
        """
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.minimum_version = ssl.TLSVersion.TLSv1_2
        with tempfile.TemporaryDirectory(prefix="chatmedia-") as tmp:
            cert_path = Path(tmp) / "cert.pem"
            key_path = Path(tmp) / "key.pem"
            cert_path.write_bytes(self.cert_pem)
            key_path.touch(mode=0o600)
            key_path.write_bytes(self.key_pem)
            ctx.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        return ctx


def generate_material(now: datetime.datetime | None = None) -> CertificateMaterial:
    """Generate a P-256 key and a self-signed certificate for localhost."""
    key = ec.generate_private_key(ec.SECP256R1())

    not_before = now or datetime.datetime.now(datetime.timezone.utc)
    not_after = not_before + VALIDITY

    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, SERVER_NAME)])
    san = x509.SubjectAlternativeName([
        x509.DNSName(SERVER_NAME),
        x509.IPAddress(ipaddress.IPv4Address("127.0.0.1")),
    ])
    # Installed by the client as its own trust root, so it has to be a
    # well-formed CA certificate as well as the server leaf.
    usage = x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=True,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )
    ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key())
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(san, critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(usage, critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(ski, critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski), critical=False
        )
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return CertificateMaterial(cert_pem, key_pem, not_before, not_after)


class CertificateProvider:
    """Owns the single certificate of the process (thread-safe, double-checked)."""

    def __init__(self) -> None:
        self._material: CertificateMaterial | None = None
        self._lock = threading.Lock()

    def ensure_certificate(self) -> CertificateMaterial:
        if self._material is not None:
            return self._material
        with self._lock:
            if self._material is None:
                self._material = generate_material()
                _log.debug("Generated TLS certificate valid until %s", self._material.not_after)
        return self._material

    def export_pem(self) -> str:
        """Return the public certificate PEM, never the key."""
        return self.ensure_certificate().cert_pem.decode("ascii")


_PROVIDER = CertificateProvider()


def default_provider() -> CertificateProvider:
    return _PROVIDER


def ensure_certificate() -> CertificateMaterial:
    return _PROVIDER.ensure_certificate()


def public_tls_cert() -> str:
    return _PROVIDER.export_pem()
