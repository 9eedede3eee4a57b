"""Pytest configuration and fixtures."""

import base64
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from transport.alexa.security import build_string_to_sign  # noqa: E402


# Fixed "now" for everything that checks time
NOW = 1_760_000_000.0
CERT_URL = "https://s3.amazonaws.com/echo.api/echo-api-cert-12.pem"
REQUEST_URL = "https://testserver/alexa"


def iso(epoch_seconds: float) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CertFactory:
    """Builds throwaway RSA certificates for signature tests."""

    def __init__(self):
        self.key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    def certificate(
        self,
        san: str = "echo-api.amazon.com",
        not_before: float = NOW - 86400,
        not_after: float = NOW + 30 * 86400,
        key=None,
    ) -> x509.Certificate:
        key = key or self.key
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, san)])
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(datetime.fromtimestamp(not_before, tz=timezone.utc))
            .not_valid_after(datetime.fromtimestamp(not_after, tz=timezone.utc))
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(san)]), critical=False)
        )
        return builder.sign(key, hashes.SHA256())

    def pem(self, **kwargs) -> str:
        cert = self.certificate(**kwargs)
        return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")

    def sign(self, text: str, key=None) -> str:
        key = key or self.key
        signature = key.sign(text.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256())
        return base64.b64encode(signature).decode("ascii")

    def headers(
        self,
        body: bytes,
        timestamp: str = None,
        nonce: str = "nonce-123",
        url: str = REQUEST_URL,
        cert_url: str = CERT_URL,
        method: str = "POST",
    ) -> dict:
        timestamp = timestamp or iso(NOW)
        string_to_sign = build_string_to_sign(method, body, timestamp, nonce, url)
        return {
            "Signature": self.sign(string_to_sign),
            "SignatureCertChainUrl": cert_url,
            "Signature-Timestamp": timestamp,
            "Signature-Nonce": nonce,
        }


class CertServer:
    """httpx transport serving one PEM and counting fetches."""

    def __init__(self, pem: str, status_code: int = 200):
        self.pem = pem
        self.status_code = status_code
        self.requests = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text=self.pem)


class FakeNotifier:
    """Records notify() calls."""

    def __init__(self, error: Exception = None):
        self.messages = []
        self.error = error

    async def notify(self, message):
        self.messages.append(message)
        if self.error is not None:
            raise self.error


@pytest.fixture(scope="session")
def cert_factory():
    return CertFactory()


@pytest.fixture
def cert_server(cert_factory):
    return CertServer(cert_factory.pem())


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def runner_script(tmp_path):
    """
    Writes a worker script and returns (path, capture_file).

    The script copies its stdin to capture_file, prints the given stdout
    and exits with the given code.
    """
    def _make(stdout: str = '{"status": "success", "summary": "done"}', exit_code: int = 0, stderr: str = ""):
        capture = tmp_path / "envelope.txt"
        script = tmp_path / "runner.py"
        script.write_text(
            "import sys\n"
            f"open({str(capture)!r}, 'w').write(sys.stdin.read())\n"
            f"sys.stdout.write({stdout!r})\n"
            f"sys.stderr.write({stderr!r})\n"
            f"sys.exit({exit_code})\n"
        )
        script.chmod(0o755)
        return script, capture

    return _make
