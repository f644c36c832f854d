from pix_gateway.models.enums import (
    AccountType,
    HealthStatus,
    PixKeyType,
    ProviderMethod,
    TransactionStatus,
)
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

__all__ = [
    "AccountType",
    "AuthToken",
    "CancelTransferRequest",
    "GetQRCodeRequest",
    "GetTransferRequest",
    "HealthStatus",
    "MTLSCredentials",
    "PixKeyType",
    "ProviderConfig",
    "ProviderCredentials",
    "ProviderMethod",
    "QRCodeRequest",
    "QRCodeResponse",
    "TransactionStatus",
    "TransferRequest",
    "TransferResponse",
    "ValidatePixKeyRequest",
    "ValidatePixKeyResponse",
]
