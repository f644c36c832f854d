"""
Banco Inter PIX adapter.

Auth: OAuth2 client credentials, form encoded, always over mutual TLS.
Transfers use the banking API with amounts as JSON numbers in reais; QR
codes follow the BCB ``valor.original`` string format.
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
from pix_gateway.providers.errors import ErrorCode, not_implemented, not_supported
from pix_gateway.providers.http import ProviderHTTPClient, already_bound, bearer, ensure_initialized
from pix_gateway.providers.wire import (
    amount_to_wire_number,
    format_amount,
    lookup,
    parse_timestamp,
    parse_token,
    utcnow,
    wire_amount,
)

logger = logging.getLogger("pix_gateway.providers.inter")

AUTH_SCOPE = "extrato.read boleto-cobranca.read boleto-cobranca.write pagamento-pix.write pagamento-pix.read"

_STATUS_MAP = {
    "REALIZADO": TransactionStatus.COMPLETED,
    "CONCLUIDO": TransactionStatus.COMPLETED,
    "EM_PROCESSAMENTO": TransactionStatus.PROCESSING,
    "PENDENTE": TransactionStatus.PROCESSING,
    "CANCELADO": TransactionStatus.CANCELLED,
    "DEVOLVIDO": TransactionStatus.CANCELLED,
    "ERRO": TransactionStatus.FAILED,
    "REJEITADO": TransactionStatus.FAILED,
}


def map_status(status: Optional[str]) -> TransactionStatus:
    return lookup(_STATUS_MAP, status, TransactionStatus.PENDING)


def _original(valor: Any) -> Any:
    return valor.get("original") if isinstance(valor, dict) else valor


class InterProvider(PixProvider):
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._http: Optional[ProviderHTTPClient] = None

    @property
    def code(self) -> str:
        return "inter"

    @property
    def name(self) -> str:
        return "Banco Inter"

    def initialize(self, config: ProviderConfig) -> None:
        if already_bound(self._http, config, self.code):
            return
        self._http = ProviderHTTPClient(config, transport=self._transport)

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
                "scope": AUTH_SCOPE,
            },
            mtls=credentials.mtls(),
            expected=(200,),
        )
        return parse_token(data)

    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        raise not_supported("Banco Inter does not support refresh tokens")

    def build_transfer_payload(self, request: TransferRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "valor": amount_to_wire_number(request.amount),
            "descricao": request.description,
            "destinatario": {
                "nome": request.payee_name,
                "cpfCnpj": request.payee_document,
                "chave": request.payee_pix_key,
            },
        }
        if request.external_id:
            payload["idempotencia"] = request.external_id
        return payload

    def parse_transfer(self, data: dict[str, Any], fallback_amount: int = 0) -> TransferResponse:
        status = map_status(data.get("status") or data.get("tipoRetorno"))
        happened_at = parse_timestamp(data.get("dataPagamento") or data.get("dataOperacao"))
        return TransferResponse(
            provider_tx_id=str(data.get("codigoSolicitacao") or ""),
            e2e_id=str(data.get("endToEndId") or ""),
            status=status,
            amount=wire_amount(data.get("valor"), fallback_amount),
            processed_at=happened_at,
            completed_at=(happened_at or utcnow()) if status == TransactionStatus.COMPLETED else None,
            raw_response=data,
        )

    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "POST",
            http.url("/banking/v2/pix"),
            failed=ErrorCode.TRANSFER_FAILED,
            error=ErrorCode.TRANSFER_ERROR,
            json_body=self.build_transfer_payload(request),
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        parsed = self.parse_transfer(data, request.amount)
        logger.info("Transfer %s created: id=%s status=%s", request.external_id, parsed.provider_tx_id, parsed.status.value)
        return TransferResponse(
            provider_tx_id=parsed.provider_tx_id,
            e2e_id=parsed.e2e_id,
            status=parsed.status,
            amount=request.amount,
            description=request.description,
            payee_name=request.payee_name,
            payee_document=request.payee_document,
            payee_pix_key=request.payee_pix_key,
            processed_at=parsed.processed_at or utcnow(),
            completed_at=parsed.completed_at,
            raw_response=data,
        )

    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/banking/v2/pix/{request.provider_tx_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return self.parse_transfer(data)

    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        raise not_supported("Banco Inter does not support cancelling transfers")

    async def _create_qrcode(self, path: str, request: QRCodeRequest, expires_in: int = 0) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        payload: dict[str, Any] = {
            "chave": request.pix_key,
            "solicitacaoPagador": request.description,
        }
        if request.amount:
            payload["valor"] = {"original": format_amount(request.amount)}
        if expires_in:
            payload["calendario"] = {"expiracao": expires_in}

        data = await http.request_json(
            "POST",
            http.url(path),
            failed=ErrorCode.QRCODE_FAILED,
            error=ErrorCode.QRCODE_ERROR,
            json_body=payload,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        created_at = utcnow()
        return QRCodeResponse(
            qrcode_id=str(data.get("txid") or ""),
            qrcode=str(data.get("pixCopiaECola") or ""),
            amount=request.amount,
            description=request.description,
            status=str(data.get("status") or "ATIVA"),
            expires_at=created_at + timedelta(seconds=expires_in) if expires_in else None,
            created_at=created_at,
            raw_response=data,
        )

    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        return await self._create_qrcode("/banking/v2/pix/qrcode-estatico", request)

    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        return await self._create_qrcode("/banking/v2/pix/qrcode-dinamico", request, expires_in=request.expires_in)

    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/banking/v2/pix/qrcode/{request.qrcode_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return QRCodeResponse(
            qrcode_id=str(data.get("txid") or request.qrcode_id),
            qrcode=str(data.get("pixCopiaECola") or ""),
            amount=wire_amount(_original(data.get("valor"))),
            description=str(data.get("solicitacaoPagador") or ""),
            status=str(data.get("status") or ""),
            raw_response=data,
        )

    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        raise not_implemented("Banco Inter does not offer PIX key lookup")

    async def health_check(self) -> None:
        http = ensure_initialized(self._http, self.code)
        await http.probe(http.config.api_url)

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
