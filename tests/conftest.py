"""
Shared test fixtures and helpers for the paypal-core test suite.

Certificates are generated on the fly with cryptography (EC P-256 keys) so
chain tests never depend on real, expiring PayPal certificates:

    root CA (self-signed) → intermediate CA → leaf "api.paypal.com"
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

SANDBOX_TOKEN_URL = "https://api.sandbox.paypal.com/v1/oauth2/token"
LIVE_TOKEN_URL = "https://api.paypal.com/v1/oauth2/token"

TOKEN_RESPONSE = {
    "scope": "https://api.paypal.com/v1/payments/.*",
    "access_token": "A21AAExampleToken",
    "token_type": "Bearer",
    "app_id": "APP-80W284485P519543T",
    "expires_in": 3600,
    "nonce": "2024-01-01T00:00:00Z",
}


# ─────────────────────── Certificate Factory ───────────────────────


@dataclass(frozen=True)
class IssuedCertificate:
    certificate: x509.Certificate
    key: ec.EllipticCurvePrivateKey


def issue_certificate(
    common_name: str,
    issuer: IssuedCertificate | None = None,
    ca: bool = False,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    path_length: int | None = None,
    cert_sign: bool | None = None,
    crl_url: str | None = None,
) -> IssuedCertificate:
    """
    Create a certificate signed by `issuer`, or self-signed when issuer is None.

    `cert_sign` adds a KeyUsage extension with keyCertSign set accordingly;
    `crl_url` adds a CRL distribution point.
    """
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.certificate.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=path_length), critical=True)
    )
    if cert_sign is not None:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=cert_sign,
                crl_sign=cert_sign,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    if crl_url is not None:
        builder = builder.add_extension(
            x509.CRLDistributionPoints(
                [
                    x509.DistributionPoint(
                        full_name=[x509.UniformResourceIdentifier(crl_url)],
                        relative_name=None,
                        reasons=None,
                        crl_issuer=None,
                    )
                ]
            ),
            critical=False,
        )
    certificate = builder.sign(issuer.key if issuer else key, hashes.SHA256())
    return IssuedCertificate(certificate=certificate, key=key)


def issue_crl(
    issuer: IssuedCertificate, revoked: Iterable[x509.Certificate] = ()
) -> x509.CertificateRevocationList:
    now = datetime.now(UTC)
    builder = (
        x509.CertificateRevocationListBuilder()
        .issuer_name(issuer.certificate.subject)
        .last_update(now - timedelta(days=1))
        .next_update(now + timedelta(days=1))
    )
    for certificate in revoked:
        builder = builder.add_revoked_certificate(
            x509.RevokedCertificateBuilder()
            .serial_number(certificate.serial_number)
            .revocation_date(now - timedelta(hours=1))
            .build()
        )
    return builder.sign(issuer.key, hashes.SHA256())


def to_der(crl: x509.CertificateRevocationList) -> bytes:
    return crl.public_bytes(serialization.Encoding.DER)


def to_pem(*certificates: x509.Certificate) -> str:
    return "".join(
        cert.public_bytes(serialization.Encoding.PEM).decode("ascii") for cert in certificates
    )


@pytest.fixture(scope="session")
def root_ca() -> IssuedCertificate:
    return issue_certificate("Test Root CA", ca=True)


@pytest.fixture(scope="session")
def intermediate_ca(root_ca: IssuedCertificate) -> IssuedCertificate:
    return issue_certificate("Test Intermediate CA", issuer=root_ca, ca=True)


@pytest.fixture(scope="session")
def paypal_leaf(intermediate_ca: IssuedCertificate) -> IssuedCertificate:
    return issue_certificate("api.paypal.com", issuer=intermediate_ca)


# ─────────────────────── Clock ───────────────────────


class FakeClock:
    """Wall clock the tests move by hand."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
