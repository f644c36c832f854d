"""Shared test fixtures."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from pix_gateway.models.provider import MTLSCredentials, ProviderConfig, ProviderCredentials

BASE_URL = "https://api.bank.test"
AUTH_URL = "https://auth.bank.test/oauth/token"


class BankStub:
    """Scripted bank API: routes (method, path) to canned responses and records requests."""

    def __init__(self):
        self.routes: dict[tuple[str, str], dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []

    def on(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        raises: Optional[type] = None,
    ) -> "BankStub":
        self.routes[(method, path)] = {
            "status": status,
            "json": json,
            "text": text,
            "headers": headers,
            "raises": raises,
        }
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": f"no route for {request.method} {request.url.path}"})
        if route["raises"] is not None:
            raise route["raises"]("simulated transport failure", request=request)
        if route["text"] is not None:
            return httpx.Response(route["status"], text=route["text"], headers=route["headers"])
        return httpx.Response(route["status"], json=route["json"], headers=route["headers"])

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict[str, Any]:
        return json.loads(self.last.content)


@pytest.fixture
def bank() -> BankStub:
    return BankStub()


@pytest.fixture
def config() -> ProviderConfig:
    return ProviderConfig(base_url=BASE_URL, auth_url=AUTH_URL, timeout=5)


@pytest.fixture
def credentials() -> ProviderCredentials:
    return ProviderCredentials(client_id="client-123", client_secret="s3cr3t")


@pytest.fixture(scope="session")
def mtls_pair() -> MTLSCredentials:
    """Self-signed client certificate and its key, PEM encoded."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "pix-gateway-test")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return MTLSCredentials(
        certificate=cert.public_bytes(serialization.Encoding.PEM),
        private_key=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
    )


@pytest.fixture(scope="session")
def other_private_key() -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
