"""
Ports — Protocol-based interfaces between the core and its callers.

Resource layers depend on these contracts, not on the concrete
adapters, so tests and alternative transports can satisfy them
structurally (no inheritance required).

  AccessTokenProvider  → OAuthTokenCredential
  RequestExecutor      → HttpExecutor
  CertificateSource    → CertificateManager
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from cryptography import x509


@runtime_checkable
class AccessTokenProvider(Protocol):
    """
    Port: supply a bearer value ("<token_type> <access_token>").

    Implementations cache the token and regenerate it shortly before it
    expires; concurrent callers must never trigger duplicate exchanges.
    """

    def get_access_token(self) -> str: ...


@runtime_checkable
class RequestExecutor(Protocol):
    """
    Port: perform one logical HTTP call and return the trimmed body text.

    Transient failures are retried up to `retry_limit` times; anything else
    raises a typed paypal_core.errors exception.
    """

    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: str = "",
        retry_limit: int | None = None,
    ) -> str: ...


@runtime_checkable
class CertificateSource(Protocol):
    """Port: the ordered certificates published at a URL (leaf first)."""

    def get_certificates(self, url: str) -> tuple[x509.Certificate, ...]: ...
