"""
Banco do Brasil PIX adapter.

Auth: OAuth2 client credentials with HTTP Basic auth, form encoded.
Amounts travel as BCB decimal strings (``"100.50"``). BB has no distinct
dynamic QR endpoint, so dynamic codes go through ``/cobqrcode`` with a
``calendario.expiracao`` block.
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
from pix_gateway.providers.wire import format_amount, lookup, parse_token, utcnow, wire_amount

logger = logging.getLogger("pix_gateway.providers.bb")

AUTH_SCOPE = "cob.write cob.read pix.write pix.read"

_STATUS_MAP = {
    "ATIVA": TransactionStatus.COMPLETED,
    "CONCLUIDA": TransactionStatus.COMPLETED,
    "PENDENTE": TransactionStatus.PROCESSING,
    "EM_PROCESSAMENTO": TransactionStatus.PROCESSING,
    "REMOVIDA_PELO_USUARIO_RECEBEDOR": TransactionStatus.CANCELLED,
    "REMOVIDA_PELO_PSP": TransactionStatus.CANCELLED,
}

_ACCOUNT_TYPES = {
    AccountType.CHECKING.value: "CORRENTE",
    AccountType.SAVINGS.value: "POUPANCA",
    AccountType.PAYMENT.value: "PAGAMENTO",
}


def map_status(status: Optional[str]) -> TransactionStatus:
    return lookup(_STATUS_MAP, status, TransactionStatus.PENDING)


def map_account_type(account_type: Optional[str]) -> str:
    return _ACCOUNT_TYPES.get((account_type or "").strip().lower(), "CORRENTE")


class BancoDoBrasilProvider(PixProvider):
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._http: Optional[ProviderHTTPClient] = None

    @property
    def code(self) -> str:
        return "banco_do_brasil"

    @property
    def name(self) -> str:
        return "Banco do Brasil"

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
            form={"grant_type": "client_credentials", "scope": AUTH_SCOPE},
            basic_auth=(credentials.client_id, credentials.client_secret),
            mtls=credentials.mtls(),
            expected=(200,),
        )
        return parse_token(data)

    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        raise not_supported("Banco do Brasil does not support refresh tokens")

    def build_transfer_payload(self, request: TransferRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "valor": format_amount(request.amount),
            "chave": request.payee_pix_key,
            "descricao": request.description,
            "txid": request.external_id,
        }
        # Without a PIX key the payee is addressed by bank account
        if not request.payee_pix_key:
            payload["favorecido"] = {
                "nome": request.payee_name,
                "cpfCnpj": request.payee_document,
                "banco": request.payee_ispb,
                "agencia": request.payee_account_agency,
                "conta": request.payee_account_number,
                "tipoConta": map_account_type(request.payee_account_type),
            }
        return payload

    def parse_transfer(self, data: dict[str, Any], fallback_amount: int = 0) -> TransferResponse:
        return TransferResponse(
            provider_tx_id=str(data.get("txid") or ""),
            e2e_id=str(data.get("endToEndId") or ""),
            status=map_status(data.get("status")),
            amount=wire_amount(data.get("valor"), fallback_amount),
            raw_response=data,
        )

    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "POST",
            http.url("/pix/v1/pix"),
            failed=ErrorCode.TRANSFER_FAILED,
            error=ErrorCode.TRANSFER_ERROR,
            json_body=self.build_transfer_payload(request),
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        parsed = self.parse_transfer(data, request.amount)
        logger.info("Transfer %s created: txid=%s status=%s", request.external_id, parsed.provider_tx_id, parsed.status.value)
        return TransferResponse(
            provider_tx_id=parsed.provider_tx_id,
            e2e_id=parsed.e2e_id,
            status=parsed.status,
            amount=parsed.amount,
            description=request.description,
            payee_name=request.payee_name,
            payee_document=request.payee_document,
            payee_pix_key=request.payee_pix_key,
            processed_at=utcnow(),
            completed_at=utcnow() if parsed.status == TransactionStatus.COMPLETED else None,
            raw_response=data,
        )

    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/pix/v1/pix/{request.provider_tx_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return self.parse_transfer(data)

    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        raise not_supported("Banco do Brasil does not support cancelling transfers")

    async def _create_qrcode(self, request: QRCodeRequest, expires_in: int = 0) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        payload: dict[str, Any] = {
            "chave": request.pix_key,
            "solicitacaoPagador": request.description,
        }
        if request.amount:
            payload["valor"] = {
                "original": format_amount(request.amount),
                "modalidadeAlteracao": 1 if request.allow_change else 0,
            }
        if expires_in:
            payload["calendario"] = {"expiracao": expires_in}

        data = await http.request_json(
            "POST",
            http.url("/pix/v1/cobqrcode"),
            failed=ErrorCode.QRCODE_FAILED,
            error=ErrorCode.QRCODE_ERROR,
            json_body=payload,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        created_at = utcnow()
        return QRCodeResponse(
            qrcode_id=str(data.get("txid") or ""),
            qrcode=str(data.get("qrcode") or ""),
            qrcode_image=str(data.get("imagemQrcode") or ""),
            amount=request.amount,
            description=request.description,
            status=str(data.get("status") or "ATIVA"),
            expires_at=created_at + timedelta(seconds=expires_in) if expires_in else None,
            created_at=created_at,
            raw_response=data,
        )

    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        return await self._create_qrcode(request)

    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        return await self._create_qrcode(request, expires_in=request.expires_in)

    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        http = ensure_initialized(self._http, self.code)
        data = await http.request_json(
            "GET",
            http.url(f"/pix/v1/cobqrcode/{request.qrcode_id}"),
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        valor = data.get("valor")
        return QRCodeResponse(
            qrcode_id=str(data.get("txid") or request.qrcode_id),
            qrcode=str(data.get("qrcode") or ""),
            qrcode_image=str(data.get("imagemQrcode") or ""),
            amount=wire_amount(valor.get("original") if isinstance(valor, dict) else valor),
            description=str(data.get("solicitacaoPagador") or ""),
            status=str(data.get("status") or ""),
            raw_response=data,
        )

    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        raise not_implemented("Banco do Brasil does not offer PIX key lookup")

    async def health_check(self) -> None:
        http = ensure_initialized(self._http, self.code)
        await http.probe(http.url("/pix/v1/health"))

    def get_supported_methods(self) -> frozenset[str]:
        return frozenset(
            m.value
            for m in (
                ProviderMethod.TRANSFER,
                ProviderMethod.GET_TRANSFER,
                ProviderMethod.QRCODE_STATIC,
                ProviderMethod.QRCODE_DYNAMIC,
                ProviderMethod.GET_QRCODE,
                ProviderMethod.PIX_KEY,
                ProviderMethod.ACCOUNT,
            )
        )
