"""
Santander PIX adapter.

Auth: OAuth2 client credentials, form encoded. Amounts travel as integer
cents with an explicit currency, so no decimal conversion is involved.
Every API call carries the ``X-Application-Key`` header with the client id.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

import httpx

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
from pix_gateway.providers.errors import ErrorCode, ProviderError, not_implemented, not_supported
from pix_gateway.providers.http import ProviderHTTPClient, already_bound, bearer, ensure_initialized
from pix_gateway.providers.wire import lookup, parse_timestamp, parse_token, utcnow

logger = logging.getLogger("pix_gateway.providers.santander")

CURRENCY = "BRL"

_STATUS_MAP = {
    "COMPLETED": TransactionStatus.COMPLETED,
    "SETTLED": TransactionStatus.COMPLETED,
    "PROCESSING": TransactionStatus.PROCESSING,
    "PENDING": TransactionStatus.PROCESSING,
    "CANCELLED": TransactionStatus.CANCELLED,
    "REJECTED": TransactionStatus.CANCELLED,
    "FAILED": TransactionStatus.FAILED,
}


def map_status(status: Optional[str]) -> TransactionStatus:
    return lookup(_STATUS_MAP, status, TransactionStatus.PENDING)


def _cents(value: Any, fallback: int = 0) -> int:
    """Santander amounts are already integer cents: ``{"value": 10050}``."""
    if isinstance(value, dict):
        value = value.get("value")
    if value is None or value == "":
        return fallback
    if isinstance(value, bool):
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Unreadable amount in response: {value!r}")
    try:
        cents = int(value)
    except (TypeError, ValueError, ArithmeticError) as e:
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Unreadable amount in response: {value!r}") from e
    if cents != value and str(cents) != str(value).strip():
        raise ProviderError(ErrorCode.PARSE_ERROR, f"Fractional cents in response: {value!r}")
    return cents


class SantanderProvider(PixProvider):
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._http: Optional[ProviderHTTPClient] = None

    @property
    def code(self) -> str:
        return "santander"

    @property
    def name(self) -> str:
        return "Santander"

    def initialize(self, config: ProviderConfig) -> None:
        if already_bound(self._http, config, self.code):
            return
        self._http = ProviderHTTPClient(config, transport=self._transport)

    @staticmethod
    def _headers(auth_token: str, client_id: str) -> dict[str, str]:
        headers = bearer(auth_token)
        if client_id:
            headers["X-Application-Key"] = client_id
        return headers

    async def authenticate(self, credentials: ProviderCredentials) -> AuthToken:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "POST",
            http.config.auth_url,
            failed=ErrorCode.AUTH_FAILED,
            error=ErrorCode.AUTH_ERROR,
            form={
                "grant_type": "client_credentials",
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
            },
            mtls=credentials.mtls(),
            expected=(200,),
        )
        return parse_token(data)

    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        raise not_supported("Santander does not support refresh tokens")

    def build_transfer_payload(self, request: TransferRequest) -> dict[str, Any]:
        return {
            "amount": {"value": request.amount, "currency": CURRENCY},
            "payee": {
                "name": request.payee_name,
                "document": request.payee_document,
                "pixKey": request.payee_pix_key,
            },
            "description": request.description,
            "externalId": request.external_id,
        }

    def parse_transfer(self, data: dict[str, Any], fallback_amount: int = 0) -> TransferResponse:
        status = map_status(data.get("status"))
        payee = data.get("payee") if isinstance(data.get("payee"), dict) else {}
        return TransferResponse(
            provider_tx_id=str(data.get("transactionId") or ""),
            e2e_id=str(data.get("endToEndId") or ""),
            status=status,
            amount=_cents(data.get("amount"), fallback_amount),
            description=str(data.get("description") or ""),
            payee_name=str(payee.get("name") or ""),
            payee_document=str(payee.get("document") or ""),
            payee_pix_key=str(payee.get("pixKey") or ""),
            processed_at=parse_timestamp(data.get("createdAt")),
            completed_at=parse_timestamp(data.get("completedAt")),
            error_code=str(data.get("errorCode") or ""),
            error_message=str(data.get("errorMessage") or ""),
            raw_response=data,
        )

    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "POST",
            http.url("/pix/v1/payments"),
            failed=ErrorCode.TRANSFER_FAILED,
            error=ErrorCode.TRANSFER_ERROR,
            json_body=self.build_transfer_payload(request),
            headers=self._headers(request.auth_token, request.client_id),
            mtls=request.mtls,
        )
        parsed = self.parse_transfer(data, request.amount)
        logger.info("Transfer %s created: id=%s status=%s", request.external_id, parsed.provider_tx_id, parsed.status.value)
        now = utcnow()
        return TransferResponse(
            provider_tx_id=parsed.provider_tx_id,
            e2e_id=parsed.e2e_id,
            status=parsed.status,
            amount=request.amount,
            description=request.description,
            payee_name=request.payee_name,
            payee_document=request.payee_document,
            payee_pix_key=request.payee_pix_key,
            processed_at=parsed.processed_at or now,
            completed_at=parsed.completed_at or (now if parsed.status == TransactionStatus.COMPLETED else None),
            error_code=parsed.error_code,
            error_message=parsed.error_message,
            raw_response=data,
        )

    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/pix/v1/payments/{request.provider_tx_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=self._headers(request.auth_token, request.client_id),
            mtls=request.mtls,
        )
        return self.parse_transfer(data)

    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        raise not_supported("Santander does not support cancelling transfers")

    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        payload: dict[str, Any] = {
            "amount": {"value": request.amount, "currency": CURRENCY},
            "pixKey": request.pix_key,
            "description": request.description,
            "externalId": request.external_id,
        }
        if request.expires_in:
            payload["expiresIn"] = request.expires_in

        data = await http.request_json(
            "POST",
            http.url("/pix/v1/qrcodes/static"),
            failed=ErrorCode.QRCODE_FAILED,
            error=ErrorCode.QRCODE_ERROR,
            json_body=payload,
            headers=self._headers(request.auth_token, request.client_id),
            mtls=request.mtls,
        )
        created_at = utcnow()
        expires_at = parse_timestamp(data.get("expiresAt"))
        if expires_at is None and request.expires_in:
            expires_at = created_at + timedelta(seconds=request.expires_in)
        return QRCodeResponse(
            qrcode_id=str(data.get("qrcodeId") or ""),
            qrcode=str(data.get("qrcode") or ""),
            qrcode_image=str(data.get("image") or ""),
            amount=request.amount,
            description=request.description,
            status=str(data.get("status") or "ACTIVE"),
            expires_at=expires_at,
            created_at=created_at,
            raw_response=data,
        )

    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        # Santander has a single QR endpoint; expiry is sent along with it
        return await self.create_qrcode_static(request)

    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/pix/v1/qrcodes/{request.qrcode_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=self._headers(request.auth_token, request.client_id),
            mtls=request.mtls,
        )
        return QRCodeResponse(
            qrcode_id=str(data.get("qrcodeId") or request.qrcode_id),
            qrcode=str(data.get("qrcode") or ""),
            qrcode_image=str(data.get("image") or ""),
            amount=_cents(data.get("amount")),
            description=str(data.get("description") or ""),
            status=str(data.get("status") or ""),
            expires_at=parse_timestamp(data.get("expiresAt")),
            raw_response=data,
        )

    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        raise not_implemented("Santander does not offer PIX key lookup")

    async def health_check(self) -> None:
        http = ensure_initialized(self._http, self.code)
        await http.probe(http.url("/health"))

    def get_supported_methods(self) -> frozenset[str]:
        return frozenset(
            m.value
            for m in (
                ProviderMethod.PIX_KEY,
                ProviderMethod.TRANSFER,
                ProviderMethod.GET_TRANSFER,
                ProviderMethod.QRCODE_STATIC,
                ProviderMethod.QRCODE_DYNAMIC,
                ProviderMethod.GET_QRCODE,
            )
        )
