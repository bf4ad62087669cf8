import datetime
import ssl
import threading

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from chatmedia import certs
from chatmedia.certs import CertificateProvider


@pytest.fixture
def provider():
    return CertificateProvider()


def test_ensure_certificate_idempotent(provider):
    first = provider.ensure_certificate()
    second = provider.ensure_certificate()
    assert first is second
    assert first.cert_pem == second.cert_pem
    assert first.key_pem == second.key_pem


def test_concurrent_first_call_generates_once(provider, monkeypatch):
    calls = []
    real = certs.generate_material

    def _counting(*args, **kwargs):
        calls.append(1)
        return real(*args, **kwargs)

    monkeypatch.setattr(certs, "generate_material", _counting)

    barrier = threading.Barrier(8)
    results = []

    def _worker():
        barrier.wait()
        results.append(provider.ensure_certificate())

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert all(r is results[0] for r in results)


def test_certificate_contents(provider):
    material = provider.ensure_certificate()
    cert = x509.load_pem_x509_certificate(material.cert_pem)

    assert isinstance(cert.public_key(), ec.EllipticCurvePublicKey)
    assert cert.public_key().curve.name == "secp256r1"
    cn = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
    assert cn == "localhost"
    assert cert.issuer == cert.subject
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    assert "localhost" in san.value.get_values_for_type(x509.DNSName)
    lifetime = cert.not_valid_after_utc - cert.not_valid_before_utc
    assert lifetime == datetime.timedelta(days=365)


def test_export_pem_has_no_private_key(provider):
    pem = provider.export_pem()
    assert pem.startswith("-----BEGIN CERTIFICATE-----")
    assert "PRIVATE KEY" not in pem
    assert pem.encode("ascii") == provider.ensure_certificate().cert_pem


def test_generation_error_propagates(provider, monkeypatch):
    def _fail(*args, **kwargs):
        raise ValueError("no entropy")

    monkeypatch.setattr(certs, "generate_material", _fail)
    with pytest.raises(ValueError, match="no entropy"):
        provider.ensure_certificate()
    with pytest.raises(ValueError):
        provider.export_pem()


def test_server_context(provider):
    ctx = provider.ensure_certificate().server_context()
    assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2


def test_module_level_provider_is_shared():
    assert certs.ensure_certificate() is certs.ensure_certificate()
    assert certs.public_tls_cert() == certs.default_provider().export_pem()
