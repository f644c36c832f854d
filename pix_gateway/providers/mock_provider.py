"""
In-memory sandbox PIX provider.

Simulates bank API behavior for local runs and fallback tests:
  - Configurable latency (jittered)
  - Configurable failure rate, split between rate limits (429),
    transient outages (503) and permanent rejections (400)
  - Transfers and QR codes kept in memory so lookups work

No network traffic; ``initialize`` still has to be called first, like a
real adapter.
"""

import asyncio
import random
import uuid
from dataclasses import replace
from datetime import timedelta
from typing import Optional

from pix_gateway.config import settings
from pix_gateway.models.enums import ProviderMethod, TransactionStatus
from pix_gateway.models.provider import (
    AuthToken,
    CancelTransferRequest,
    GetQRCodeRequest,
    GetTransferRequest,
    MTLSCredentials,
    ProviderConfig,
    ProviderCredentials,
    QRCodeRequest,
    QRCodeResponse,
    TransferRequest,
    TransferResponse,
    ValidatePixKeyRequest,
    ValidatePixKeyResponse,
)
from pix_gateway.providers.base import PixProvider
from pix_gateway.providers.errors import ErrorCode, ProviderError, http_failure
from pix_gateway.providers.wire import format_amount, utcnow

SANDBOX_ISPB = "00000000"
TOKEN_TTL = 3600


class MockPixProvider(PixProvider):
    """
    Sandbox provider that supports every capability.

    With ``auto_complete=False`` transfers stay ``processing`` so they can
    be cancelled.
    """

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        auto_complete: bool = True,
    ):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._auto_complete = auto_complete
        self._config: Optional[ProviderConfig] = None
        self._transfers: dict[str, TransferResponse] = {}
        self._by_external_id: dict[str, str] = {}
        self._qrcodes: dict[str, QRCodeResponse] = {}
        self.healthy = True

    @property
    def code(self) -> str:
        return "mock"

    @property
    def name(self) -> str:
        return "Sandbox"

    def initialize(self, config: ProviderConfig) -> None:
        if self._config is not None:
            if self._config == config:
                return
            raise ProviderError(
                ErrorCode.ALREADY_INITIALIZED,
                f"Provider '{self.code}' is already initialized with a different configuration",
            )
        self._config = config

    async def _simulate(self, failed: ErrorCode) -> None:
        if self._config is None:
            raise ProviderError(ErrorCode.NOT_INITIALIZED, f"Provider '{self.code}' used before initialize()")

        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        roll = random.random()
        if roll < self._failure_rate * 0.3:
            raise http_failure(failed, "Sandbox rate limit: too many requests", 429, retry_after=1.0)
        if roll < self._failure_rate * 0.6:
            raise http_failure(failed, "Sandbox transient error: service temporarily unavailable", 503)
        if roll < self._failure_rate:
            raise http_failure(failed, "Sandbox permanent error: invalid account details", 400)

    async def authenticate(self, credentials: ProviderCredentials) -> AuthToken:
        await self._simulate(ErrorCode.AUTH_FAILED)
        if not credentials.client_id or not credentials.client_secret:
            raise http_failure(ErrorCode.AUTH_FAILED, "Sandbox rejected empty client credentials", 401)
        return AuthToken.issued_now(f"mock_{uuid.uuid4().hex}", TOKEN_TTL, refresh_token=f"mock_rt_{uuid.uuid4().hex}")

    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        await self._simulate(ErrorCode.AUTH_FAILED)
        if not token.refresh_token:
            raise ProviderError(ErrorCode.NOT_SUPPORTED, "Token carries no refresh token; authenticate again")
        return AuthToken.issued_now(f"mock_{uuid.uuid4().hex}", TOKEN_TTL, refresh_token=token.refresh_token)

    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        await self._simulate(ErrorCode.TRANSFER_FAILED)

        # Same external_id, same transfer
        existing = self._by_external_id.get(request.external_id)
        if existing is not None:
            return self._transfers[existing]

        now = utcnow()
        status = TransactionStatus.COMPLETED if self._auto_complete else TransactionStatus.PROCESSING
        tx_id = f"pix_{uuid.uuid4().hex[:16]}"
        response = TransferResponse(
            provider_tx_id=tx_id,
            e2e_id=f"E{SANDBOX_ISPB}{now:%Y%m%d%H%M}{uuid.uuid4().hex[:11]}",
            status=status,
            amount=request.amount,
            description=request.description,
            payee_name=request.payee_name,
            payee_document=request.payee_document,
            payee_pix_key=request.payee_pix_key,
            processed_at=now,
            completed_at=now if status == TransactionStatus.COMPLETED else None,
            raw_response={"id": tx_id, "valor": format_amount(request.amount), "status": status.value},
        )
        self._transfers[tx_id] = response
        self._by_external_id[request.external_id] = tx_id
        return response

    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        await self._simulate(ErrorCode.QUERY_FAILED)
        try:
            return self._transfers[request.provider_tx_id]
        except KeyError:
            raise ProviderError(ErrorCode.NOT_FOUND, "Resource not found at provider", status_code=404) from None

    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        await self._simulate(ErrorCode.CANCEL_FAILED)
        current = self._transfers.get(request.provider_tx_id)
        if current is None:
            raise ProviderError(ErrorCode.NOT_FOUND, "Resource not found at provider", status_code=404)
        if current.status.is_terminal:
            raise http_failure(
                ErrorCode.CANCEL_FAILED, f"Transfer already {current.status.value}; cannot cancel", 422
            )
        self._transfers[request.provider_tx_id] = replace(
            current, status=TransactionStatus.CANCELLED, error_message=request.reason
        )

    async def _create_qrcode(self, request: QRCodeRequest, expires_in: int = 0) -> QRCodeResponse:
        now = utcnow()
        qrcode_id = uuid.uuid4().hex[:25]
        response = QRCodeResponse(
            qrcode_id=qrcode_id,
            qrcode=f"00020126{len(request.pix_key):02d}{request.pix_key}5303986"
            + (f"54{format_amount(request.amount)}" if request.amount else "")
            + f"5802BR62{len(qrcode_id) + 4:02d}05{len(qrcode_id):02d}{qrcode_id}",
            amount=request.amount,
            description=request.description,
            status="ATIVA",
            expires_at=now + timedelta(seconds=expires_in) if expires_in else None,
            created_at=now,
        )
        self._qrcodes[qrcode_id] = response
        return response

    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        await self._simulate(ErrorCode.QRCODE_FAILED)
        return await self._create_qrcode(request)

    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        await self._simulate(ErrorCode.QRCODE_FAILED)
        return await self._create_qrcode(request, expires_in=request.expires_in)

    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        await self._simulate(ErrorCode.QUERY_FAILED)
        try:
            return self._qrcodes[request.qrcode_id]
        except KeyError:
            raise ProviderError(ErrorCode.NOT_FOUND, "Resource not found at provider", status_code=404) from None

    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        await self._simulate(ErrorCode.QUERY_FAILED)
        return ValidatePixKeyResponse(
            valid=bool(request.pix_key.strip()),
            pix_key=request.pix_key,
            pix_key_type=request.pix_key_type,
            name="Sandbox Recipient" if request.pix_key.strip() else "",
            ispb=SANDBOX_ISPB,
        )

    async def health_check(self) -> None:
        if self._config is None:
            raise ProviderError(ErrorCode.NOT_INITIALIZED, f"Provider '{self.code}' used before initialize()")
        if not self.healthy:
            raise http_failure(ErrorCode.HEALTH_CHECK_FAILED, "Sandbox marked unhealthy", 503)

    def get_supported_methods(self) -> frozenset[str]:
        return frozenset(m.value for m in ProviderMethod)
