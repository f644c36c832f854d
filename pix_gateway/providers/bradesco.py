"""
Bradesco PIX adapter.

Auth: OAuth2 client credentials as a JSON body, over mutual TLS when the
provider config requires it. The token endpoint also issues refresh tokens.

Transfers go through the SPI endpoints with amounts as JSON numbers in
reais. Dynamic QR codes use the BCB standard ``/v2/cob`` API; Bradesco has
no static QR endpoint.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

import httpx

from pix_gateway.models.enums import AccountType, ProviderMethod, TransactionStatus
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
    expiry_after,
    format_amount,
    lookup,
    parse_timestamp,
    parse_token,
    utcnow,
    wire_amount,
)

logger = logging.getLogger("pix_gateway.providers.bradesco")

ISPB = "60746948"
DEFAULT_COB_EXPIRATION = 86400  # BCB default for /cob, in seconds

_STATUS_MAP = {
    "EM_PROCESSAMENTO": TransactionStatus.PROCESSING,
    "CONCLUIDA": TransactionStatus.COMPLETED,
    "REJEITADA": TransactionStatus.FAILED,
    "ERRO": TransactionStatus.FAILED,
    "CANCELADA": TransactionStatus.CANCELLED,
}

_ACCOUNT_TYPES = {
    AccountType.CHECKING.value: "CC",
    AccountType.SAVINGS.value: "PP",
    AccountType.PAYMENT.value: "PG",
}


def map_status(status: Optional[str]) -> TransactionStatus:
    return lookup(_STATUS_MAP, status, TransactionStatus.PENDING)


def map_account_type(account_type: Optional[str]) -> str:
    return _ACCOUNT_TYPES.get((account_type or "").strip().lower(), "CC")


def _party(pix_key: str, bank: str, agency: str, number: str, account_type: str, document: str) -> dict[str, Any]:
    party: dict[str, Any] = {}
    if pix_key:
        party["chavePix"] = pix_key
    else:
        party["banco"] = bank
        party["agencia"] = agency
        party["conta"] = number
        party["tipoConta"] = map_account_type(account_type)
    if document:
        party["cpfCnpj"] = document
    return party


class BradescoProvider(PixProvider):
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._http: Optional[ProviderHTTPClient] = None

    @property
    def code(self) -> str:
        return "bradesco"

    @property
    def name(self) -> str:
        return "Bradesco"

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
            json_body={
                "grant_type": "client_credentials",
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
            },
            mtls=credentials.mtls(),
            expected=(200,),
        )
        return parse_token(data)

    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        if not token.refresh_token:
            raise not_supported("Token carries no refresh token; authenticate again")
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "POST",
            http.config.auth_url,
            failed=ErrorCode.AUTH_FAILED,
            error=ErrorCode.AUTH_ERROR,
            json_body={"grant_type": "refresh_token", "refresh_token": token.refresh_token},
            mtls=mtls,
            expected=(200,),
        )
        return parse_token(data)

    def build_transfer_payload(self, request: TransferRequest) -> dict[str, Any]:
        return {
            "idTransacao": request.external_id,
            "valor": amount_to_wire_number(request.amount),
            "descricao": request.description,
            "pagador": _party(
                request.payer_pix_key,
                request.payer_bank,
                request.payer_account_agency,
                request.payer_account_number,
                request.payer_account_type,
                request.payer_document,
            ),
            "recebedor": _party(
                request.payee_pix_key,
                request.payee_bank,
                request.payee_account_agency,
                request.payee_account_number,
                request.payee_account_type,
                request.payee_document,
            ),
        }

    def parse_transfer(self, data: dict[str, Any], fallback_amount: int = 0) -> TransferResponse:
        status = map_status(data.get("status"))
        happened_at = parse_timestamp(data.get("dataHora"))
        error_message = ""
        if status == TransactionStatus.FAILED:
            error_message = str(data.get("motivo") or "")
        return TransferResponse(
            provider_tx_id=str(data.get("idTransacao") or ""),
            e2e_id=str(data.get("endToEndId") or ""),
            status=status,
            amount=wire_amount(data.get("valor"), fallback_amount),
            processed_at=happened_at,
            completed_at=(happened_at or utcnow()) if status == TransactionStatus.COMPLETED else None,
            error_code=str(data.get("status") or "") if error_message else "",
            error_message=error_message,
            raw_response=data,
        )

    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "POST",
            http.url("/v1/spi/solicitar-transferencia"),
            failed=ErrorCode.TRANSFER_FAILED,
            error=ErrorCode.TRANSFER_ERROR,
            json_body=self.build_transfer_payload(request),
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        parsed = self.parse_transfer(data, request.amount)
        logger.info("Transfer %s created: id=%s status=%s", request.external_id, parsed.provider_tx_id, parsed.status.value)
        return TransferResponse(
            provider_tx_id=parsed.provider_tx_id or request.external_id,
            e2e_id=parsed.e2e_id,
            status=parsed.status,
            amount=request.amount,
            description=request.description,
            payee_name=request.payee_name,
            payee_document=request.payee_document,
            payee_pix_key=request.payee_pix_key,
            processed_at=parsed.processed_at or utcnow(),
            completed_at=parsed.completed_at,
            error_code=parsed.error_code,
            error_message=parsed.error_message,
            raw_response=data,
        )

    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/v1/spi/consultar-transferencia/{request.provider_tx_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return self.parse_transfer(data)

    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        raise not_supported("Bradesco does not support cancelling transfers")

    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        raise not_supported("Bradesco has no static QR code endpoint; use a dynamic code")

    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        expires_in = request.expires_in or DEFAULT_COB_EXPIRATION
        payload: dict[str, Any] = {
            "calendario": {"expiracao": expires_in},
            "valor": {
                "original": format_amount(request.amount),
                "modalidadeAlteracao": 1 if request.allow_change else 0,
            },
            "chave": request.pix_key,
            "solicitacaoPagador": request.description,
        }
        data = await http.request_json(
            "POST",
            http.url("/v2/cob"),
            failed=ErrorCode.QRCODE_FAILED,
            error=ErrorCode.QRCODE_ERROR,
            json_body=payload,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        calendario = data.get("calendario") if isinstance(data.get("calendario"), dict) else {}
        created_at = parse_timestamp(calendario.get("criacao")) or utcnow()
        return QRCodeResponse(
            qrcode_id=str(data.get("txid") or ""),
            qrcode=str(data.get("pixCopiaECola") or ""),
            amount=request.amount,
            description=request.description,
            status=str(data.get("status") or "ATIVA"),
            expires_at=created_at + timedelta(seconds=expires_in),
            created_at=created_at,
            raw_response=data,
        )

    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/v2/cob/{request.qrcode_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        calendario = data.get("calendario") if isinstance(data.get("calendario"), dict) else {}
        created_at = parse_timestamp(calendario.get("criacao")) or utcnow()
        valor = data.get("valor") if isinstance(data.get("valor"), dict) else {}
        return QRCodeResponse(
            qrcode_id=str(data.get("txid") or request.qrcode_id),
            qrcode=str(data.get("pixCopiaECola") or ""),
            amount=wire_amount(valor.get("original")),
            description=str(data.get("solicitacaoPagador") or ""),
            status=str(data.get("status") or ""),
            expires_at=expiry_after(created_at, calendario.get("expiracao")),
            created_at=created_at,
            raw_response=data,
        )

    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        raise not_implemented("Bradesco does not offer PIX key lookup")

    async def health_check(self) -> None:
        http = ensure_initialized(self._http, self.code)
        await http.probe(http.config.api_url)

    def get_supported_methods(self) -> frozenset[str]:
        return frozenset(
            m.value
            for m in (
                ProviderMethod.PIX_KEY,
                ProviderMethod.ACCOUNT,
                ProviderMethod.TRANSFER,
                ProviderMethod.GET_TRANSFER,
                ProviderMethod.QRCODE_DYNAMIC,
                ProviderMethod.GET_QRCODE,
                ProviderMethod.REFRESH_TOKEN,
            )
        )
