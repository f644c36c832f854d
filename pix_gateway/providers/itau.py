"""
Itaú Unibanco PIX adapter (SISPAG API).

Auth: OAuth2 client credentials as JSON with the ``sispag`` scope, over
mutual TLS when required. Amounts are JSON numbers in reais and fields are
snake_case. Error bodies carry ``codigo`` / ``mensagem`` / ``detalhes``,
which are folded into the raised ``ProviderError``.

Itaú is the only adapter with key lookup (DICT) and cancellation; the
latter only succeeds for payments still scheduled (``AGENDADO``).
"""

import json
import logging
from datetime import timedelta
from typing import Any, Optional

import httpx

from pix_gateway.models.enums import PixKeyType, ProviderMethod, TransactionStatus
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
from pix_gateway.providers.errors import ErrorCode, ProviderError, not_supported
from pix_gateway.providers.http import ProviderHTTPClient, already_bound, bearer, ensure_initialized
from pix_gateway.providers.wire import (
    amount_to_wire_number,
    lookup,
    parse_timestamp,
    parse_token,
    utcnow,
    wire_amount,
)

logger = logging.getLogger("pix_gateway.providers.itau")

ISPB = "60701190"
AUTH_SCOPE = "sispag"

_STATUS_MAP = {
    "PROCESSANDO": TransactionStatus.PROCESSING,
    "AGENDADO": TransactionStatus.PROCESSING,
    "LIQUIDADO": TransactionStatus.COMPLETED,
    "CONCLUIDO": TransactionStatus.COMPLETED,
    "REJEITADO": TransactionStatus.FAILED,
    "ERRO": TransactionStatus.FAILED,
    "CANCELADO": TransactionStatus.CANCELLED,
}

# Order matters: the first entry is the fallback for unknown key types
_KEY_TYPES = {
    PixKeyType.CPF: "CPF",
    PixKeyType.CNPJ: "CNPJ",
    PixKeyType.EMAIL: "EMAIL",
    PixKeyType.PHONE: "TELEFONE",
    PixKeyType.RANDOM: "CHAVE_ALEATORIA",
    PixKeyType.ACCOUNT: "AGENCIA_CONTA",
}
_KEY_TYPES_FROM_WIRE = {wire: key_type for key_type, wire in _KEY_TYPES.items()}


def map_status(status: Optional[str]) -> TransactionStatus:
    return lookup(_STATUS_MAP, status, TransactionStatus.PENDING)


def map_pix_key_type(key_type: Optional[Any]) -> str:
    try:
        return _KEY_TYPES[PixKeyType(getattr(key_type, "value", key_type))]
    except ValueError:
        return next(iter(_KEY_TYPES.values()))


def _with_bank_error(err: ProviderError) -> ProviderError:
    """Fold Itaú's error body into the exception, in place."""
    body = err.details.get("response")
    if not err.status_code or not body:
        return err
    try:
        parsed = json.loads(body)
    except ValueError:
        return err
    if not isinstance(parsed, dict):
        return err
    if parsed.get("codigo"):
        err.details["bank_code"] = str(parsed["codigo"])
    if parsed.get("mensagem"):
        err.message = str(parsed["mensagem"])
        err.args = (err.message,)
    fields = [
        {"field": d.get("campo", ""), "message": d.get("mensagem", "")}
        for d in (parsed.get("detalhes") if isinstance(parsed.get("detalhes"), list) else [])
        if isinstance(d, dict)
    ]
    if fields:
        err.details["fields"] = fields
    return err


class ItauProvider(PixProvider):
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport
        self._http: Optional[ProviderHTTPClient] = None

    @property
    def code(self) -> str:
        return "itau"

    @property
    def name(self) -> str:
        return "Itaú Unibanco"

    def initialize(self, config: ProviderConfig) -> None:
        if already_bound(self._http, config, self.code):
            return
        self._http = ProviderHTTPClient(config, transport=self._transport)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        http = ensure_initialized(self._http, self.code)
        try:
            return await http.request_json(method, http.url(path), **kwargs)
        except ProviderError as e:
            raise _with_bank_error(e)

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
                "scope": AUTH_SCOPE,
            },
            mtls=credentials.mtls(),
            expected=(200,),
        )
        return parse_token(data)

    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        raise not_supported("Itaú does not support refresh tokens")

    def build_transfer_payload(self, request: TransferRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id_requisicao": request.external_id,
            "valor": amount_to_wire_number(request.amount),
            "descricao": request.description,
        }

        if request.payer_pix_key:
            payload["chave_pagador"] = request.payer_pix_key
        else:
            payload["conta_pagador"] = {
                "agencia": request.payer_account_agency,
                "conta": request.payer_account_number,
                "tipo": request.payer_account_type,
            }

        if request.payee_pix_key:
            payload["chave_recebedor"] = request.payee_pix_key
            payload["tipo_chave"] = map_pix_key_type(request.payee_pix_key_type)
        else:
            payload["conta_recebedor"] = {
                "ispb": request.payee_ispb,
                "agencia": request.payee_account_agency,
                "conta": request.payee_account_number,
                "tipo": request.payee_account_type,
            }

        if request.payee_document:
            payload["cpf_cnpj_recebedor"] = request.payee_document
        return payload

    def parse_transfer(self, data: dict[str, Any], fallback_amount: int = 0) -> TransferResponse:
        status = map_status(data.get("status"))
        paid_at = parse_timestamp(data.get("data_pagamento"))
        payee = data.get("recebedor") if isinstance(data.get("recebedor"), dict) else {}
        return TransferResponse(
            provider_tx_id=str(data.get("id_requisicao") or ""),
            e2e_id=str(data.get("end_to_end_id") or ""),
            status=status,
            amount=wire_amount(data.get("valor"), fallback_amount),
            payee_name=str(payee.get("nome") or ""),
            payee_document=str(payee.get("cpf_cnpj") or ""),
            payee_pix_key=str(payee.get("chave_pix") or ""),
            processed_at=paid_at,
            completed_at=(paid_at or utcnow()) if status == TransactionStatus.COMPLETED else None,
            raw_response=data,
        )

    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        data = await self._request(
            "POST",
            "/sispag/v1/pagamentos/pix",
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
            payee_name=parsed.payee_name or request.payee_name,
            payee_document=parsed.payee_document or request.payee_document,
            payee_pix_key=parsed.payee_pix_key or request.payee_pix_key,
            processed_at=parsed.processed_at or utcnow(),
            completed_at=parsed.completed_at,
            raw_response=data,
        )

    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        data = await self._request(
            "GET",
            f"/sispag/v1/pagamentos/pix/{request.provider_tx_id}",
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return self.parse_transfer(data)

    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        await self._request(
            "POST",
            f"/sispag/v1/pagamentos/pix/{request.provider_tx_id}/cancelamento",
            failed=ErrorCode.CANCEL_FAILED,
            error=ErrorCode.CANCEL_ERROR,
            json_body={"motivo": request.reason},
            headers=bearer(request.auth_token),
            mtls=request.mtls,
            expected=(200, 202, 204),
        )
        logger.info("Transfer %s cancelled", request.provider_tx_id)

    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        data = await self._request(
            "POST",
            "/sispag/v1/qrcodes/estatico",
            failed=ErrorCode.QRCODE_FAILED,
            error=ErrorCode.QRCODE_ERROR,
            json_body={
                "chave_pix": request.pix_key,
                "valor": amount_to_wire_number(request.amount),
                "descricao": request.description,
            },
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return QRCodeResponse(
            qrcode_id=str(data.get("id_qrcode") or ""),
            qrcode=str(data.get("qrcode") or ""),
            qrcode_image=str(data.get("qrcode_imagem") or ""),
            amount=request.amount,
            description=request.description,
            status="active",
            raw_response=data,
        )

    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        data = await self._request(
            "POST",
            "/sispag/v1/qrcodes/dinamico",
            failed=ErrorCode.QRCODE_FAILED,
            error=ErrorCode.QRCODE_ERROR,
            json_body={
                "chave_pix": request.pix_key,
                "valor": amount_to_wire_number(request.amount),
                "descricao": request.description,
                "expiracao": request.expires_in,
                "permite_alterar": request.allow_change,
            },
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        created_at = utcnow()
        expires_at = parse_timestamp(data.get("expiracao"))
        if expires_at is None and request.expires_in:
            expires_at = created_at + timedelta(seconds=request.expires_in)
        return QRCodeResponse(
            qrcode_id=str(data.get("id_qrcode") or ""),
            qrcode=str(data.get("qrcode") or ""),
            qrcode_image=str(data.get("qrcode_imagem") or ""),
            amount=request.amount,
            description=request.description,
            status="active",
            expires_at=expires_at,
            created_at=created_at,
            raw_response=data,
        )

    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        data = await self._request(
            "GET",
            f"/sispag/v1/qrcodes/{request.qrcode_id}",
            failed=ErrorCode.QUERY_FAILED,
            error=ErrorCode.QUERY_ERROR,
            headers=bearer(request.auth_token),
            mtls=request.mtls,
        )
        return QRCodeResponse(
            qrcode_id=str(data.get("id_qrcode") or request.qrcode_id),
            qrcode=str(data.get("qrcode") or ""),
            amount=wire_amount(data.get("valor")),
            description=str(data.get("descricao") or ""),
            status=str(data.get("status") or ""),
            expires_at=parse_timestamp(data.get("expiracao")),
            raw_response=data,
        )

    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        try:
            data = await self._request(
                "GET",
                f"/sispag/v1/dict/chaves/{request.pix_key}",
                failed=ErrorCode.QUERY_FAILED,
                error=ErrorCode.QUERY_ERROR,
                headers=bearer(request.auth_token),
                mtls=request.mtls,
            )
        except ProviderError as e:
            if e.code == ErrorCode.NOT_FOUND.value:
                return ValidatePixKeyResponse(valid=False, pix_key=request.pix_key, pix_key_type=request.pix_key_type)
            raise

        wire_type = str(data.get("tipo_chave") or "").upper()
        return ValidatePixKeyResponse(
            valid=True,
            pix_key=str(data.get("chave") or request.pix_key),
            pix_key_type=_KEY_TYPES_FROM_WIRE.get(wire_type, request.pix_key_type),
            name=str(data.get("nome") or ""),
            document=str(data.get("cpf_cnpj") or ""),
            bank=str(data.get("banco") or ""),
            ispb=str(data.get("ispb") or ""),
            account_type=str(data.get("tipo_conta") or ""),
        )

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
                ProviderMethod.CANCEL_TRANSFER,
                ProviderMethod.QRCODE_STATIC,
                ProviderMethod.QRCODE_DYNAMIC,
                ProviderMethod.GET_QRCODE,
                ProviderMethod.VALIDATE_PIX_KEY,
            )
        )
