"""
Abstract PIX provider interface.

Every bank adapter (Banco do Brasil, Bradesco, Itaú, Santander, Inter)
implements this interface directly. Adapters translate canonical requests
to their bank's REST dialect and back, and raise ``ProviderError`` for
every failure.

Lifecycle: construct, call ``initialize(config)`` once at startup, then
share the instance freely between concurrent calls. Network methods called
before ``initialize`` raise ``ProviderError(NOT_INITIALIZED)``.
"""

from abc import ABC, abstractmethod
from typing import Optional

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


class PixProvider(ABC):
    """Abstract base class for bank adapters."""

    @property
    @abstractmethod
    def code(self) -> str:
        """Stable registry key (e.g. 'itau'). Never changes for a bank."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable bank name."""
        ...

    @abstractmethod
    def initialize(self, config: ProviderConfig) -> None:
        """
        Bind the connection policy.

        Calling it again with an equal config is a no-op.

        Raises:
            ProviderError: ALREADY_INITIALIZED for a different config.
        """
        ...

    @abstractmethod
    async def authenticate(self, credentials: ProviderCredentials) -> AuthToken:
        """
        Run the bank's OAuth2 handshake (over mTLS where required).

        The token is not cached by the adapter.
        """
        ...

    @abstractmethod
    async def refresh_token(self, token: AuthToken, mtls: Optional[MTLSCredentials] = None) -> AuthToken:
        """
        Exchange ``token.refresh_token`` for a new token.

        Raises:
            ProviderError: NOT_SUPPORTED when the bank has no refresh grant;
                callers should authenticate from scratch instead.
        """
        ...

    @abstractmethod
    async def create_transfer(self, request: TransferRequest) -> TransferResponse:
        ...

    @abstractmethod
    async def get_transfer(self, request: GetTransferRequest) -> TransferResponse:
        ...

    @abstractmethod
    async def cancel_transfer(self, request: CancelTransferRequest) -> None:
        """May raise ProviderError(NOT_SUPPORTED)."""
        ...

    @abstractmethod
    async def create_qrcode_static(self, request: QRCodeRequest) -> QRCodeResponse:
        ...

    @abstractmethod
    async def create_qrcode_dynamic(self, request: QRCodeRequest) -> QRCodeResponse:
        """May reuse the static path as long as the requested expiry is honoured."""
        ...

    @abstractmethod
    async def get_qrcode(self, request: GetQRCodeRequest) -> QRCodeResponse:
        ...

    @abstractmethod
    async def validate_pix_key(self, request: ValidatePixKeyRequest) -> ValidatePixKeyResponse:
        """Raises ProviderError(NOT_IMPLEMENTED) when the bank offers no lookup."""
        ...

    @abstractmethod
    async def health_check(self) -> None:
        """
        Lightweight liveness probe. Needs no token.

        Raises:
            ProviderError: HEALTH_CHECK_FAILED.
        """
        ...

    @abstractmethod
    def get_supported_methods(self) -> frozenset[str]:
        """Static capability advertisement (``ProviderMethod`` values)."""
        ...

    def supports(self, method: str) -> bool:
        return str(getattr(method, "value", method)) in self.get_supported_methods()
