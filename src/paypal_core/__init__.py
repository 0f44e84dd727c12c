"""
paypal_core — authenticated, resilient HTTP access layer for the PayPal REST API.

Acquires and caches OAuth bearer tokens, executes outbound HTTP calls
with bounded retry of transient failures, and validates the TLS
certificate chain of a remote endpoint against a pinned issuer and domain.

Resource models (payments, invoices, identity objects) build on top of
this package; they only see a configuration map, a RequestContext and
the typed errors in paypal_core.errors.
"""

__version__ = "0.1.0"
