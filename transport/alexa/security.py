"""
Alexa Request Verification

SECURITY BOUNDARY - Verify that a webhook call was signed by Alexa and is fresh.
No dispatch imports. No retries. Nothing downstream runs unless this passes.

Verification steps:
1. All four signature headers present
2. Certificate URL points at the Alexa certificate bucket
3. Certificate fetched (or reused from cache, 6h TTL)
4. RSA/SHA-256 signature over method, body digest, timestamp, nonce and URL
5. Timestamp within 150 seconds of now
"""

import base64
import binascii
import hashlib
import logging
import posixpath
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional
from urllib.parse import urlsplit

import httpx
from cryptography import x509
from cryptography.exceptions import InvalidSignature as CryptoInvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .schemas import SignedRequest

logger = logging.getLogger(__name__)


SIGNATURE_HEADER = "Signature"
CERT_URL_HEADER = "SignatureCertChainUrl"
TIMESTAMP_HEADER = "Signature-Timestamp"
NONCE_HEADER = "Signature-Nonce"

CERT_HOST = "s3.amazonaws.com"
CERT_PATH_PREFIX = "/echo.api/"
CERT_TTL_SECONDS = 6 * 60 * 60
MAX_TIMESTAMP_SKEW_MS = 150_000


# ============================================================================
# ERRORS
# ============================================================================

class AuthError(Exception):
    """Request failed verification. Terminal for the request."""

    code = "auth_failed"
    status_code = 401

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingHeaders(AuthError):
    code = "missing_headers"
    status_code = 400


class InvalidCertUrl(AuthError):
    code = "invalid_cert_url"
    status_code = 400


class CertFetchFailed(AuthError):
    code = "cert_fetch_failed"


class InvalidSignature(AuthError):
    code = "invalid_signature"


class StaleTimestamp(AuthError):
    code = "stale_timestamp"


# ============================================================================
# CERTIFICATE CACHE
# ============================================================================

@dataclass
class CertificateCacheEntry:
    pem: str
    fetched_at: float


class CertificateCache:
    """
    Signing certificates keyed by URL.

    Entries are served while younger than the TTL and replaced on the next
    access after that. Nothing is evicted eagerly.
    """

    def __init__(self, ttl_seconds: float = CERT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CertificateCacheEntry] = {}

    def get(self, url: str) -> Optional[str]:
        """Cached PEM for url, or None when absent or expired."""
        entry = self._entries.get(url)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self.ttl_seconds:
            return None
        return entry.pem

    def put(self, url: str, pem: str) -> None:
        self._entries[url] = CertificateCacheEntry(pem=pem, fetched_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================================
# HELPERS
# ============================================================================

def validate_cert_url(cert_url: str) -> bool:
    """Check the certificate URL against the Alexa bucket. No network I/O."""
    try:
        parsed = urlsplit(cert_url)
        port = parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() != "https":
        return False
    if (parsed.hostname or "").lower() != CERT_HOST:
        return False
    if port not in (None, 443):
        return False

    path = posixpath.normpath(parsed.path) if parsed.path else ""
    if parsed.path.endswith("/") and not path.endswith("/"):
        path += "/"
    return path.startswith(CERT_PATH_PREFIX)


def build_string_to_sign(method: str, body: bytes, timestamp: str, nonce: str, url: str) -> str:
    """Canonical string covered by the Alexa signature."""
    body_digest = base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")
    return f"{method}\n{body_digest}\n{timestamp}\n{nonce}\n{url}"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp. Naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def signed_request_from_headers(headers, body: bytes, url: str, method: str = "POST") -> SignedRequest:
    """Collect the signature headers of an inbound call into a SignedRequest."""
    return SignedRequest(
        signature=headers.get(SIGNATURE_HEADER),
        cert_url=headers.get(CERT_URL_HEADER),
        timestamp=headers.get(TIMESTAMP_HEADER),
        nonce=headers.get(NONCE_HEADER),
        body=body,
        url=url,
        method=method,
    )


# ============================================================================
# AUTHENTICATOR
# ============================================================================

class RequestAuthenticator:
    """
    Verifies provenance and freshness of inbound Alexa requests.

    Owns the certificate cache. The clock is shared by the cache and the
    timestamp check so tests can move time without sleeping.
    """

    def __init__(
        self,
        cache: Optional[CertificateCache] = None,
        clock: Callable[[], float] = time.time,
        expected_san: Optional[str] = None,
        max_skew_ms: int = MAX_TIMESTAMP_SKEW_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.cache = cache if cache is not None else CertificateCache(clock=clock)
        self.clock = clock
        self.expected_san = expected_san
        self.max_skew_ms = max_skew_ms
        self._transport = transport
        self._timeout = timeout

    async def authenticate(self, request: SignedRequest) -> None:
        """
        Verify a signed request.

        Raises:
            MissingHeaders: A signature header is absent
            InvalidCertUrl: Certificate URL outside the Alexa bucket
            CertFetchFailed: Certificate could not be downloaded
            InvalidSignature: Certificate or signature did not verify
            StaleTimestamp: Timestamp outside the replay window
        """
        if not (request.signature and request.cert_url and request.timestamp and request.nonce):
            raise MissingHeaders("Missing signature headers")

        if not validate_cert_url(request.cert_url):
            raise InvalidCertUrl("Invalid certificate URL")

        pem = await self.load_certificate(request.cert_url)

        string_to_sign = build_string_to_sign(
            request.method,
            request.body,
            request.timestamp,
            request.nonce,
            request.url,
        )
        self.verify_signature(pem, request.signature, string_to_sign)
        self.check_timestamp(request.timestamp)

    async def load_certificate(self, cert_url: str) -> str:
        """Fetch-or-reuse the PEM at cert_url."""
        pem = self.cache.get(cert_url)
        if pem is not None:
            return pem

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.get(cert_url)
        except httpx.HTTPError as e:
            logger.error(f"Certificate fetch failed: {e}", extra={"cert_url": cert_url})
            raise CertFetchFailed("Certificate fetch failed") from e

        if response.status_code != 200:
            logger.error(
                f"Certificate fetch returned {response.status_code}",
                extra={"cert_url": cert_url, "status_code": response.status_code},
            )
            raise CertFetchFailed("Certificate fetch failed")

        pem = response.text
        self.cache.put(cert_url, pem)
        logger.info("Signing certificate cached", extra={"cert_url": cert_url})
        return pem

    def verify_signature(self, pem: str, signature: str, string_to_sign: str) -> None:
        """Validate the certificate chain and the signature it produced."""
        try:
            chain = x509.load_pem_x509_certificates(pem.encode("utf-8"))
        except ValueError as e:
            raise InvalidSignature("Signature verification failed") from e

        self._check_chain(chain)

        public_key = chain[0].public_key()
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise InvalidSignature("Signing certificate does not hold an RSA key")

        try:
            signature_bytes = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidSignature("Invalid signature") from e

        try:
            public_key.verify(
                signature_bytes,
                string_to_sign.encode("utf-8"),
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
        except CryptoInvalidSignature as e:
            raise InvalidSignature("Invalid signature") from e

    def _check_chain(self, chain: List[x509.Certificate]) -> None:
        signing_cert = chain[0]
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        if not (signing_cert.not_valid_before_utc <= now <= signing_cert.not_valid_after_utc):
            raise InvalidSignature("Signing certificate is not currently valid")

        if self.expected_san:
            try:
                san = signing_cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
                names = san.value.get_values_for_type(x509.DNSName)
            except x509.ExtensionNotFound:
                names = []
            if self.expected_san not in names:
                raise InvalidSignature("Signing certificate subject does not match")

        # Links only; the root is not checked against a trust store
        for cert, issuer in zip(chain, chain[1:]):
            try:
                cert.verify_directly_issued_by(issuer)
            except (ValueError, TypeError, CryptoInvalidSignature) as e:
                raise InvalidSignature("Certificate chain is broken") from e

    def check_timestamp(self, timestamp: str) -> None:
        """Reject requests outside the replay window, in either direction."""
        try:
            request_time = parse_timestamp(timestamp)
        except ValueError as e:
            raise StaleTimestamp("Request timestamp is invalid") from e

        skew_ms = abs(self.clock() - request_time.timestamp()) * 1000
        if skew_ms > self.max_skew_ms:
            raise StaleTimestamp("Request timestamp too old")
