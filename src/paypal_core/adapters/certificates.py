"""
Certificate adapter — remote certificate bundles and chain-of-trust checks.

Adapter layer — implements the CertificateSource port using:
  - httpx: bundle and CRL download
  - cryptography (PyCA): PEM/DER loading, signature checks, CRLs, fingerprints

Validation of a downloaded bundle (leaf first):
  leaf
    → issuer found among the bundle and the trusted root
      (name match + signature + CA basic constraints, path length, keyCertSign)
    → ... until the trusted root or a self-signed certificate
    → every element inside its validity window
    → no element listed on a CRL from its issuer (supplied, or fetched from
      each element's CRL distribution points)
    → trusted root's SHA-256 fingerprint present in the built chain
    → leaf CN pinned to *.paypal.com

Downloaded bundles are cached per URL for the life of the process. The
first fully parsed bundle stored for a URL wins; readers only ever see
complete, immutable tuples. Fetched CRLs are cached per URL until their
nextUpdate time.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from importlib import resources
from pathlib import Path

import httpx
import structlog
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.x509.extensions import ExtensionNotFound
from cryptography.x509.oid import NameOID

from paypal_core.config import TRUSTED_CERTIFICATE_LOCATION
from paypal_core.errors import PayPalError

log = structlog.get_logger()

PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
PEM_END = "-----END CERTIFICATE-----"
PEM_CRL_BEGIN = "-----BEGIN X509 CRL-----"

BUNDLED_ROOT = "DigiCertHighAssuranceEVRootCA.pem"
PINNED_DOMAIN_SUFFIX = ".paypal.com"

_CN_PATTERN = re.compile(r"[a-zA-Z._-]+")

_DOWNLOAD_TIMEOUT_SECONDS = 30.0


class _ChainFailure(Exception):
    """The chain could not be built or one of its elements is unacceptable."""


# ─────────────────────── Parsing ───────────────────────


def parse_pem_bundle(text: str) -> list[x509.Certificate]:
    """
    Parse every PEM certificate block in `text`, in order.

    Raises PayPalError when a block cannot be decoded.
    """
    certificates: list[x509.Certificate] = []
    for segment in text.split(PEM_BEGIN)[1:]:
        body = segment.split(PEM_END, 1)[0].strip()
        if not body:
            continue
        pem = f"{PEM_BEGIN}\n{body}\n{PEM_END}\n"
        try:
            certificates.append(x509.load_pem_x509_certificate(pem.encode("ascii")))
        except ValueError as exc:
            raise PayPalError(f"Unable to parse certificate #{len(certificates) + 1}: {exc}") from exc
    return certificates


def load_certificate(data: bytes) -> x509.Certificate:
    """Load a single certificate, PEM-armoured or DER."""
    if PEM_BEGIN.encode("ascii") in data:
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


def load_revocation_list(data: bytes) -> x509.CertificateRevocationList:
    """Load a CRL, PEM-armoured or DER (the usual form at distribution points)."""
    if PEM_CRL_BEGIN.encode("ascii") in data:
        return x509.load_pem_x509_crl(data)
    return x509.load_der_x509_crl(data)


def crl_distribution_urls(certificate: x509.Certificate) -> list[str]:
    """HTTP(S) URLs from the certificate's CRL distribution points, in order."""
    try:
        points = certificate.extensions.get_extension_for_class(x509.CRLDistributionPoints).value
    except ExtensionNotFound:
        return []
    return [
        name.value
        for point in points
        for name in point.full_name or ()
        if isinstance(name, x509.UniformResourceIdentifier)
        and name.value.startswith(("http://", "https://"))
    ]


def fingerprint(certificate: x509.Certificate) -> bytes:
    return certificate.fingerprint(hashes.SHA256())


def common_name(certificate: x509.Certificate) -> str | None:
    attributes = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode("utf-8", "replace")


# ─────────────────────── Chain Building ───────────────────────


def _is_issued_by(certificate: x509.Certificate, issuer: x509.Certificate) -> bool:
    if certificate.issuer != issuer.subject:
        return False
    try:
        certificate.verify_directly_issued_by(issuer)
    except (InvalidSignature, ValueError, TypeError):
        return False
    return True


def _can_sign_certificates(issuer: x509.Certificate, ca_below: int) -> bool:
    """
    Whether `issuer` may sign certificates with `ca_below` CA certificates beneath it.

    Requires BasicConstraints(ca=True), a path length covering `ca_below`,
    and keyCertSign when KeyUsage is present.
    """
    try:
        constraints = issuer.extensions.get_extension_for_class(x509.BasicConstraints).value
    except ExtensionNotFound:
        return False
    if not constraints.ca:
        return False
    if constraints.path_length is not None and ca_below > constraints.path_length:
        return False
    try:
        key_usage = issuer.extensions.get_extension_for_class(x509.KeyUsage).value
    except ExtensionNotFound:
        return True
    return key_usage.key_cert_sign


def _check_validity(certificate: x509.Certificate, now: datetime) -> None:
    if not certificate.not_valid_before_utc <= now <= certificate.not_valid_after_utc:
        raise _ChainFailure(
            f"certificate {certificate.subject.rfc4514_string()} is outside its validity window"
        )


def _build_chain(
    leaf: x509.Certificate,
    intermediates: Sequence[x509.Certificate],
    anchors: Sequence[x509.Certificate],
    now: datetime,
) -> list[x509.Certificate]:
    anchor_prints = {fingerprint(anchor) for anchor in anchors}
    pool = [*anchors, *intermediates]
    chain = [leaf]
    current = leaf

    while True:
        _check_validity(current, now)
        if fingerprint(current) in anchor_prints or _is_issued_by(current, current):
            return chain

        used = {fingerprint(cert) for cert in chain}
        ca_below = len(chain) - 1
        issuer = next(
            (
                candidate
                for candidate in pool
                if fingerprint(candidate) not in used
                and _is_issued_by(current, candidate)
                and _can_sign_certificates(candidate, ca_below)
            ),
            None,
        )
        if issuer is None:
            raise _ChainFailure(f"no CA issuer found for {current.subject.rfc4514_string()}")
        chain.append(issuer)
        current = issuer


def _check_revocation(
    chain: Sequence[x509.Certificate],
    revocation_lists: Iterable[x509.CertificateRevocationList],
) -> None:
    crls = list(revocation_lists)
    if not crls:
        return
    for position, certificate in enumerate(chain):
        # The last element is the anchor, its own issuer.
        issuer = chain[position + 1] if position + 1 < len(chain) else certificate
        for crl in crls:
            if crl.issuer != issuer.subject:
                continue
            if not crl.is_signature_valid(issuer.public_key()):
                continue
            if crl.get_revoked_certificate_by_serial_number(certificate.serial_number) is not None:
                raise _ChainFailure(
                    f"certificate {certificate.subject.rfc4514_string()} "
                    f"(serial {certificate.serial_number}) is revoked"
                )


def validate_client_certificate(client_certs: Sequence[x509.Certificate] | None) -> bool:
    """True when the leaf certificate's common name belongs to .paypal.com."""
    if not client_certs:
        return False
    name = common_name(client_certs[0])
    if name is None:
        log.warning("certificates.domain_pin_failed", reason="leaf has no common name")
        return False
    match = _CN_PATTERN.match(name)
    if match is None or not match.group(0).endswith(PINNED_DOMAIN_SUFFIX):
        log.warning("certificates.domain_pin_failed", common_name=name)
        return False
    return True


def validate_chain(
    trusted_root: x509.Certificate | None,
    client_certs: Sequence[x509.Certificate] | None,
    revocation_lists: Iterable[x509.CertificateRevocationList] = (),
    now: datetime | None = None,
) -> bool:
    """
    Check `client_certs` (leaf first) chains to `trusted_root` and is pinned to .paypal.com.

    Any failure to build or trust the chain yields False rather than an error.
    """
    if trusted_root is None or not client_certs:
        return False

    moment = now if now is not None else datetime.now(UTC)
    leaf, *intermediates = client_certs
    try:
        chain = _build_chain(leaf, intermediates, [trusted_root], moment)
        _check_revocation(chain, revocation_lists)
    except _ChainFailure as exc:
        log.warning("certificates.chain_failed", reason=str(exc))
        return False

    root_print = fingerprint(trusted_root)
    if not any(fingerprint(element) == root_print for element in chain):
        log.warning("certificates.chain_failed", reason="trusted root is not part of the chain")
        return False

    return validate_client_certificate(client_certs)


# ─────────────────────── Manager ───────────────────────


class CertificateManager:
    """
    Process-wide cache of downloaded certificate bundles and trust anchors.

    Implements the CertificateSource port. Use `CertificateManager.instance()`
    for the shared manager; separate instances are only useful in tests.
    """

    _instance: CertificateManager | None = None
    _instance_lock = threading.Lock()

    def __init__(self, timeout: float = _DOWNLOAD_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout
        self._lock = threading.Lock()
        self._certificates: dict[str, tuple[x509.Certificate, ...]] = {}
        self._trusted_roots: dict[str, x509.Certificate] = {}
        self._revocation_lists: dict[str, x509.CertificateRevocationList] = {}

    @classmethod
    def instance(cls) -> CertificateManager:
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def get_certificates(self, url: str) -> tuple[x509.Certificate, ...]:
        """
        Return the certificates published at `url`, downloading them once.

        Raises PayPalError when the download or parse fails.
        """
        with self._lock:
            cached = self._certificates.get(url)
        if cached is not None:
            log.debug("certificates.cache_hit", url=url)
            return cached

        try:
            response = httpx.get(url, timeout=self._timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PayPalError(f"Unable to download certificates from {url}: {exc}") from exc

        parsed = tuple(parse_pem_bundle(response.text))
        log.info("certificates.downloaded", url=url, count=len(parsed))

        with self._lock:
            return self._certificates.setdefault(url, parsed)

    def get_trusted_root(self, config: Mapping[str, str] | None = None) -> x509.Certificate:
        """
        Return the trust anchor: the configured file, or the bundled root.

        Raises PayPalError("Unable to load trusted certificate.") on any failure.
        """
        location = (config or {}).get(TRUSTED_CERTIFICATE_LOCATION, "")
        key = location or BUNDLED_ROOT

        with self._lock:
            cached = self._trusted_roots.get(key)
            if cached is not None:
                return cached
            try:
                if location:
                    data = Path(location).read_bytes()
                else:
                    data = (
                        resources.files("paypal_core")
                        .joinpath("resources", BUNDLED_ROOT)
                        .read_bytes()
                    )
                root = load_certificate(data)
            except (OSError, ValueError) as exc:
                log.error("certificates.trusted_root_failed", location=key, error=str(exc))
                raise PayPalError("Unable to load trusted certificate.") from exc
            self._trusted_roots[key] = root
            log.info("certificates.trusted_root_loaded", location=key)
            return root

    def get_revocation_list(
        self, url: str, now: datetime | None = None
    ) -> x509.CertificateRevocationList:
        """
        Return the CRL published at `url`, re-downloading it once past nextUpdate.

        Raises PayPalError when the download or parse fails.
        """
        moment = now if now is not None else datetime.now(UTC)
        with self._lock:
            cached = self._revocation_lists.get(url)
        if cached is not None and (
            cached.next_update_utc is None or moment <= cached.next_update_utc
        ):
            log.debug("certificates.crl_cache_hit", url=url)
            return cached

        try:
            response = httpx.get(url, timeout=self._timeout, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PayPalError(f"Unable to download revocation list from {url}: {exc}") from exc
        try:
            crl = load_revocation_list(response.content)
        except ValueError as exc:
            raise PayPalError(f"Unable to parse revocation list from {url}: {exc}") from exc
        log.info("certificates.crl_downloaded", url=url, revoked=len(crl))

        with self._lock:
            self._revocation_lists[url] = crl
        return crl

    def get_revocation_lists(
        self, certificates: Iterable[x509.Certificate], now: datetime | None = None
    ) -> tuple[x509.CertificateRevocationList, ...]:
        """Fetch every CRL named by the certificates' distribution points."""
        urls = dict.fromkeys(
            url for certificate in certificates for url in crl_distribution_urls(certificate)
        )
        return tuple(self.get_revocation_list(url, now) for url in urls)

    def validate_chain(
        self,
        trusted_root: x509.Certificate | None,
        client_certs: Sequence[x509.Certificate] | None,
        revocation_lists: Iterable[x509.CertificateRevocationList] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Validate like `validate_chain`, fetching CRLs from distribution points.

        Explicit `revocation_lists` replace the fetch. A CRL that cannot be
        fetched leaves revocation status unknown and the chain untrusted.
        """
        if revocation_lists is None:
            elements = [*(client_certs or ()), *((trusted_root,) if trusted_root else ())]
            try:
                revocation_lists = self.get_revocation_lists(elements, now)
            except PayPalError as exc:
                log.warning("certificates.chain_failed", reason=f"revocation status unknown: {exc}")
                return False
        return validate_chain(trusted_root, client_certs, revocation_lists, now)

    def validate_url(self, url: str, config: Mapping[str, str] | None = None) -> bool:
        """Download the bundle at `url` and validate it against the trusted root."""
        return self.validate_chain(self.get_trusted_root(config), self.get_certificates(url))
