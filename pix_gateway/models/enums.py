"""Enumerations for the canonical PIX transaction model."""

from enum import Enum


class TransactionStatus(str, Enum):
    """Canonical lifecycle states every bank status is mapped into."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self not in (TransactionStatus.PENDING, TransactionStatus.PROCESSING)


class PixKeyType(str, Enum):
    """Kinds of PIX keys registered in DICT."""

    CPF = "cpf"
    CNPJ = "cnpj"
    EMAIL = "email"
    PHONE = "phone"
    RANDOM = "random"
    ACCOUNT = "account"


class AccountType(str, Enum):
    """Bank account types."""

    CHECKING = "checking"
    SAVINGS = "savings"
    PAYMENT = "payment"


class HealthStatus(str, Enum):
    """Last known health of a provider adapter."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ProviderMethod(str, Enum):
    """Capability tokens advertised by ``PixProvider.get_supported_methods``."""

    TRANSFER = "transfer"
    GET_TRANSFER = "get_transfer"
    CANCEL_TRANSFER = "cancel_transfer"
    QRCODE_STATIC = "qrcode_static"
    QRCODE_DYNAMIC = "qrcode_dynamic"
    GET_QRCODE = "get_qrcode"
    VALIDATE_PIX_KEY = "validate_pix_key"
    REFRESH_TOKEN = "refresh_token"
    PIX_KEY = "pix_key"  # transfer addressed by PIX key
    ACCOUNT = "account"  # transfer addressed by agency/account
