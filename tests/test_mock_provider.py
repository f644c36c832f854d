"""Tests for the in-memory sandbox provider."""

import pytest

from pix_gateway.models.enums import TransactionStatus
from pix_gateway.models.provider import (
    CancelTransferRequest,
    GetQRCodeRequest,
    GetTransferRequest,
    ProviderConfig,
    ProviderCredentials,
    QRCodeRequest,
    TransferRequest,
)
from pix_gateway.providers.errors import ErrorCode, ProviderError
from pix_gateway.providers.mock_provider import MockPixProvider

SANDBOX = ProviderConfig(base_url="memory://sandbox", auth_url="memory://sandbox/oauth/token")


def sandbox(**kwargs) -> MockPixProvider:
    provider = MockPixProvider(failure_rate=kwargs.pop("failure_rate", 0.0), latency_ms=0, **kwargs)
    provider.initialize(SANDBOX)
    return provider


class TestSandbox:
    @pytest.mark.asyncio
    async def test_transfer_round_trip(self):
        provider = sandbox()
        created = await provider.create_transfer(TransferRequest(external_id="e1", amount=10050))
        assert created.status == TransactionStatus.COMPLETED
        assert created.e2e_id.startswith("E00000000")
        fetched = await provider.get_transfer(GetTransferRequest(provider_tx_id=created.provider_tx_id))
        assert fetched == created

    @pytest.mark.asyncio
    async def test_same_external_id_is_idempotent(self):
        provider = sandbox()
        first = await provider.create_transfer(TransferRequest(external_id="e1", amount=100))
        second = await provider.create_transfer(TransferRequest(external_id="e1", amount=100))
        assert first.provider_tx_id == second.provider_tx_id

    @pytest.mark.asyncio
    async def test_cancel_pending_transfer(self):
        provider = sandbox(auto_complete=False)
        created = await provider.create_transfer(TransferRequest(external_id="e1", amount=100))
        await provider.cancel_transfer(CancelTransferRequest(provider_tx_id=created.provider_tx_id, reason="oops"))
        fetched = await provider.get_transfer(GetTransferRequest(provider_tx_id=created.provider_tx_id))
        assert fetched.status == TransactionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_completed_transfer_fails(self):
        provider = sandbox()
        created = await provider.create_transfer(TransferRequest(external_id="e1", amount=100))
        with pytest.raises(ProviderError) as exc:
            await provider.cancel_transfer(CancelTransferRequest(provider_tx_id=created.provider_tx_id))
        assert exc.value.code == ErrorCode.CANCEL_FAILED
        assert exc.value.is_client_error

    @pytest.mark.asyncio
    async def test_qrcode_lookup(self):
        provider = sandbox()
        created = await provider.create_qrcode_dynamic(
            QRCodeRequest(external_id="q1", amount=500, pix_key="k", expires_in=60)
        )
        assert created.expires_at is not None
        assert await provider.get_qrcode(GetQRCodeRequest(qrcode_id=created.qrcode_id)) == created

    @pytest.mark.asyncio
    async def test_unknown_ids(self):
        provider = sandbox()
        with pytest.raises(ProviderError) as exc:
            await provider.get_transfer(GetTransferRequest(provider_tx_id="nope"))
        assert exc.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_empty_credentials_rejected(self):
        provider = sandbox()
        with pytest.raises(ProviderError) as exc:
            await provider.authenticate(ProviderCredentials(client_id="", client_secret=""))
        assert exc.value.code == ErrorCode.AUTH_FAILED

    @pytest.mark.asyncio
    async def test_always_failing_sandbox_raises_classified_errors(self):
        provider = sandbox(failure_rate=1.0)
        for _ in range(20):
            with pytest.raises(ProviderError) as exc:
                await provider.create_transfer(TransferRequest(external_id="e1", amount=100))
            assert exc.value.code == ErrorCode.TRANSFER_FAILED
            assert exc.value.retryable == (exc.value.status_code in (429, 503))

    @pytest.mark.asyncio
    async def test_health_toggle(self):
        provider = sandbox()
        await provider.health_check()
        provider.healthy = False
        with pytest.raises(ProviderError) as exc:
            await provider.health_check()
        assert exc.value.code == ErrorCode.HEALTH_CHECK_FAILED

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        with pytest.raises(ProviderError) as exc:
            await MockPixProvider(failure_rate=0.0, latency_ms=0).create_transfer(
                TransferRequest(external_id="e1", amount=100)
            )
        assert exc.value.code == ErrorCode.NOT_INITIALIZED
