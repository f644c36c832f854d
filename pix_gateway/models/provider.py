"""
Canonical value types spoken by every bank adapter.

Requests are built by the calling layer, handed to an adapter, and never
mutated afterwards. Amounts are always integer centavos; conversion to the
bank's decimal representation happens inside the adapter only.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pix_gateway.models.enums import AccountType, PixKeyType, TransactionStatus

DEFAULT_TOKEN_TTL = 300  # seconds, used when a bank omits expires_in or sends a non-positive one


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_amount(amount: Any, allow_zero: bool) -> None:
    # bool is an int subclass; floats never represent money here
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"amount must be integer centavos, got {type(amount).__name__}")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValueError(f"invalid amount: {amount}")


@dataclass(frozen=True)
class ProviderConfig:
    """Connection policy bound to an adapter by ``initialize``."""

    base_url: str
    auth_url: str
    sandbox_url: str = ""
    timeout: float = 30  # seconds
    max_retries: int = 3
    requires_mtls: bool = False
    sandbox: bool = False

    @property
    def api_url(self) -> str:
        """Effective base URL, without a trailing slash."""
        url = self.sandbox_url if self.sandbox and self.sandbox_url else self.base_url
        return url.rstrip("/")


@dataclass(frozen=True)
class MTLSCredentials:
    """PEM encoded client certificate and private key for mutual TLS."""

    certificate: bytes = field(repr=False)
    private_key: bytes = field(repr=False)


@dataclass(frozen=True)
class ProviderCredentials:
    """Decrypted per-merchant secrets. Secret fields stay out of repr()."""

    client_id: str
    client_secret: str = field(repr=False)
    certificate: bytes = field(default=b"", repr=False)
    private_key: bytes = field(default=b"", repr=False)
    account_agency: str = ""
    account_number: str = ""
    account_type: str = AccountType.CHECKING.value
    pix_key: str = ""
    pix_key_type: Optional[PixKeyType] = None

    def mtls(self) -> Optional[MTLSCredentials]:
        if not self.certificate and not self.private_key:
            return None
        return MTLSCredentials(certificate=self.certificate, private_key=self.private_key)


@dataclass(frozen=True)
class AuthToken:
    """Access token returned by ``authenticate``. Caching is the caller's job."""

    access_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    expires_in: int = DEFAULT_TOKEN_TTL
    refresh_token: str = field(default="", repr=False)
    scope: str = ""

    @classmethod
    def issued_now(
        cls,
        access_token: str,
        expires_in: Optional[int],
        token_type: Optional[str] = None,
        refresh_token: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> "AuthToken":
        ttl = int(expires_in) if expires_in and int(expires_in) > 0 else DEFAULT_TOKEN_TTL
        return cls(
            access_token=access_token,
            expires_at=_utcnow() + timedelta(seconds=ttl),
            token_type=token_type or "Bearer",
            expires_in=ttl,
            refresh_token=refresh_token or "",
            scope=scope or "",
        )

    @property
    def is_expired(self) -> bool:
        return _utcnow() >= self.expires_at

    def expires_within(self, seconds: float) -> bool:
        """True if the token expires in less than ``seconds``."""
        return _utcnow() + timedelta(seconds=seconds) >= self.expires_at


@dataclass(frozen=True)
class TransferRequest:
    """Request to send a PIX transfer."""

    external_id: str  # merchant idempotency key
    amount: int  # centavos
    description: str = ""

    payer_name: str = ""
    payer_document: str = ""
    payer_pix_key: str = ""
    payer_pix_key_type: Optional[PixKeyType] = None
    payer_account_agency: str = ""
    payer_account_number: str = ""
    payer_account_type: str = ""
    payer_bank: str = ""

    payee_name: str = ""
    payee_document: str = ""
    payee_pix_key: str = ""
    payee_pix_key_type: Optional[PixKeyType] = None
    payee_account_agency: str = ""
    payee_account_number: str = ""
    payee_account_type: str = ""
    payee_bank: str = ""
    payee_ispb: str = ""

    metadata: dict[str, Any] = field(default_factory=dict)

    auth_token: str = field(default="", repr=False)
    client_id: str = ""
    mtls: Optional[MTLSCredentials] = field(default=None, repr=False)

    def __post_init__(self):
        _check_amount(self.amount, allow_zero=False)


@dataclass(frozen=True)
class TransferResponse:
    """Canonical result of a transfer creation or lookup."""

    provider_tx_id: str
    status: TransactionStatus
    e2e_id: str = ""
    amount: int = 0
    description: str = ""

    payee_name: str = ""
    payee_document: str = ""
    payee_pix_key: str = ""

    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    error_code: str = ""
    error_message: str = ""

    raw_response: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class GetTransferRequest:
    provider_tx_id: str
    auth_token: str = field(default="", repr=False)
    client_id: str = ""
    mtls: Optional[MTLSCredentials] = field(default=None, repr=False)


@dataclass(frozen=True)
class CancelTransferRequest:
    provider_tx_id: str
    reason: str = ""
    auth_token: str = field(default="", repr=False)
    client_id: str = ""
    mtls: Optional[MTLSCredentials] = field(default=None, repr=False)


@dataclass(frozen=True)
class QRCodeRequest:
    """Request to create a static or dynamic QR code."""

    external_id: str
    amount: int = 0  # centavos, 0 = payer chooses the amount (static only)
    description: str = ""
    payee_name: str = ""
    payee_document: str = ""
    pix_key: str = ""
    pix_key_type: Optional[PixKeyType] = None
    expires_in: int = 0  # seconds, dynamic codes
    allow_change: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    auth_token: str = field(default="", repr=False)
    client_id: str = ""
    mtls: Optional[MTLSCredentials] = field(default=None, repr=False)

    def __post_init__(self):
        _check_amount(self.amount, allow_zero=True)
        if self.expires_in < 0:
            raise ValueError(f"invalid expires_in: {self.expires_in}")


@dataclass(frozen=True)
class QRCodeResponse:
    """QR code data. ``status`` is the bank's own string, not normalized."""

    qrcode_id: str
    qrcode: str  # PIX copy-and-paste code
    qrcode_image: str = ""  # base64 image, when the bank renders one
    amount: int = 0
    description: str = ""
    status: str = ""
    expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    raw_response: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class GetQRCodeRequest:
    qrcode_id: str
    auth_token: str = field(default="", repr=False)
    client_id: str = ""
    mtls: Optional[MTLSCredentials] = field(default=None, repr=False)


@dataclass(frozen=True)
class ValidatePixKeyRequest:
    pix_key: str
    pix_key_type: Optional[PixKeyType] = None
    auth_token: str = field(default="", repr=False)
    client_id: str = ""
    mtls: Optional[MTLSCredentials] = field(default=None, repr=False)


@dataclass(frozen=True)
class ValidatePixKeyResponse:
    valid: bool
    pix_key: str
    pix_key_type: Optional[PixKeyType] = None
    name: str = ""
    document: str = ""
    bank: str = ""
    ispb: str = ""
    account_type: str = ""
