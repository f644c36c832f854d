"""
Outbound HTTP for bank adapters.

One ``httpx.AsyncClient`` is opened per call: mTLS material belongs to the
merchant making the call, so no transport is shared between calls and the
adapter never mutates anything after ``initialize``. Every failure comes
out of here already classified as a ``ProviderError``.
"""

import asyncio
import json
import logging
import os
import ssl
import tempfile
from decimal import Decimal
from typing import Any, Optional, Union

import httpx
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from pix_gateway.models.provider import MTLSCredentials, ProviderConfig
from pix_gateway.providers.errors import (
    ErrorCode,
    ProviderError,
    http_failure,
    transport_failure,
)

logger = logging.getLogger("pix_gateway.providers.http")

DEFAULT_TIMEOUT = 30


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def ensure_initialized(client: Optional["ProviderHTTPClient"], code: str) -> "ProviderHTTPClient":
    """Adapters fail deterministically when used before ``initialize``."""
    if client is None:
        raise ProviderError(ErrorCode.NOT_INITIALIZED, f"Provider '{code}' used before initialize()")
    return client


def already_bound(client: Optional["ProviderHTTPClient"], config: ProviderConfig, code: str) -> bool:
    """
    True when ``initialize`` was already called with this exact config.

    Raises:
        ProviderError: ALREADY_INITIALIZED when a different config is passed.
    """
    if client is None:
        return False
    if client.config == config:
        return True
    raise ProviderError(
        ErrorCode.ALREADY_INITIALIZED,
        f"Provider '{code}' is already initialized with a different configuration",
    )


def build_ssl_context(mtls: MTLSCredentials) -> ssl.SSLContext:
    """
    Client-certificate SSL context from PEM bytes.

    Raises:
        ProviderError: CERT_ERROR when the certificate or key is unusable.
    """
    try:
        x509.load_pem_x509_certificate(mtls.certificate)
        serialization.load_pem_private_key(mtls.private_key, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ProviderError(
            ErrorCode.CERT_ERROR,
            "Invalid mTLS certificate or private key",
            details={"error": str(e)},
        ) from e

    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    # ssl only loads key material from files
    with tempfile.TemporaryDirectory(prefix="pix-mtls-") as tmp:
        cert_path = os.path.join(tmp, "client.crt")
        key_path = os.path.join(tmp, "client.key")
        for path, data in ((cert_path, mtls.certificate), (key_path, mtls.private_key)):
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
        try:
            context.load_cert_chain(cert_path, key_path)
        except ssl.SSLError as e:
            raise ProviderError(
                ErrorCode.CERT_ERROR,
                "mTLS certificate does not match private key",
                details={"error": str(e)},
            ) from e
    return context


def decode_json(response: httpx.Response) -> dict[str, Any]:
    """Decode a bank response body; floats are read as Decimal."""
    if not response.content:
        return {}
    try:
        data = response.json(parse_float=Decimal)
    except ValueError as e:
        raise ProviderError(
            ErrorCode.PARSE_ERROR,
            "Malformed response body",
            status_code=response.status_code,
            details={"error": str(e), "response": response.text[:2000]},
        ) from e
    if not isinstance(data, dict):
        raise ProviderError(
            ErrorCode.PARSE_ERROR,
            f"Expected a JSON object, got {type(data).__name__}",
            status_code=response.status_code,
            details={"response": response.text[:2000]},
        )
    return data


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ProviderHTTPClient:
    """Bound to one adapter's ``ProviderConfig``; immutable after construction."""

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config
        self._transport = transport
        self._timeout = config.timeout if config.timeout > 0 else DEFAULT_TIMEOUT

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def url(self, path: str) -> str:
        return f"{self._config.api_url}/{path.lstrip('/')}"

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        failed: ErrorCode,
        error: ErrorCode,
        json_body: Optional[dict[str, Any]] = None,
        form: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        basic_auth: Optional[tuple[str, str]] = None,
        mtls: Optional[MTLSCredentials] = None,
        expected: tuple[int, ...] = (200, 201),
    ) -> dict[str, Any]:
        """
        Send a request and return the decoded JSON object.

        Args:
            failed: Code used when the bank answers with an error status.
            error: Code used when no answer arrives (transport, timeout).

        Raises:
            ProviderError: Always classified; never a bare httpx error.
        """
        send_headers = dict(headers or {})
        content: Optional[bytes] = None
        if json_body is not None:
            try:
                content = json.dumps(json_body).encode("utf-8")
            except (TypeError, ValueError) as e:
                raise ProviderError(
                    ErrorCode.MARSHAL_ERROR, "Could not serialize request payload", details={"error": str(e)}
                ) from e
            send_headers.setdefault("Content-Type", "application/json")

        response = await self._send(
            method,
            url,
            error=error,
            content=content,
            form=form,
            headers=send_headers,
            basic_auth=basic_auth,
            mtls=mtls,
        )

        if response.status_code == 404 and method.upper() == "GET":
            raise ProviderError(
                ErrorCode.NOT_FOUND,
                "Resource not found at provider",
                status_code=404,
                details={"response": response.text[:2000]},
            )
        if response.status_code not in expected:
            raise http_failure(
                failed,
                f"Provider returned HTTP {response.status_code}",
                response.status_code,
                response.text,
                retry_after=_retry_after(response),
            )
        return decode_json(response)

    async def probe(self, url: str) -> None:
        """
        Liveness probe; any answer below 500 counts as alive.

        Raises:
            ProviderError: HEALTH_CHECK_FAILED.
        """
        response = await self._send("GET", url, error=ErrorCode.HEALTH_CHECK_FAILED, mtls_optional=True)
        if response.status_code >= 500:
            raise http_failure(
                ErrorCode.HEALTH_CHECK_FAILED,
                f"Provider unhealthy: HTTP {response.status_code}",
                response.status_code,
                response.text,
            )

    async def _send(
        self,
        method: str,
        url: str,
        *,
        error: ErrorCode,
        content: Optional[bytes] = None,
        form: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        basic_auth: Optional[tuple[str, str]] = None,
        mtls: Optional[MTLSCredentials] = None,
        mtls_optional: bool = False,
    ) -> httpx.Response:
        verify: Union[bool, ssl.SSLContext] = True
        if mtls is not None:
            verify = build_ssl_context(mtls)
        elif self._config.requires_mtls and not mtls_optional:
            raise ProviderError(ErrorCode.CERT_ERROR, "Provider requires mTLS but no certificate was supplied")

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                verify=verify,
                transport=self._transport,
            ) as client:
                response = await asyncio.wait_for(
                    client.request(method, url, content=content, data=form, headers=headers, auth=basic_auth),
                    timeout=self._timeout,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.warning("%s %s timed out after %ss", method, url, self._timeout)
            raise transport_failure(error, "Provider request timed out", e, timeout=True) from e
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, type(e).__name__)
            raise transport_failure(error, "Provider request failed", e) from e

        logger.debug("%s %s -> %d", method, url, response.status_code)
        return response
