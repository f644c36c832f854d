"""
Startup wiring: settings in, ready-to-use registry and cipher out.

Each bank gets its built-in connection defaults, overlaid with whatever
``PROVIDERS__<CODE>__*`` settings are present. Adapters are initialized
here, once, before anything can call them.
"""

import logging
from typing import Callable, Optional

import httpx

from pix_gateway.config import ProviderSettings, Settings
from pix_gateway.models.provider import ProviderConfig
from pix_gateway.providers.base import PixProvider
from pix_gateway.providers.bb import BancoDoBrasilProvider
from pix_gateway.providers.bradesco import BradescoProvider
from pix_gateway.providers.inter import InterProvider
from pix_gateway.providers.itau import ItauProvider
from pix_gateway.providers.mock_provider import MockPixProvider
from pix_gateway.providers.registry import ProviderRegistry
from pix_gateway.providers.santander import SantanderProvider
from pix_gateway.security.cipher import CredentialCipher, InvalidKeyError

logger = logging.getLogger("pix_gateway.bootstrap")

ADAPTERS: dict[str, Callable[..., PixProvider]] = {
    "banco_do_brasil": BancoDoBrasilProvider,
    "bradesco": BradescoProvider,
    "itau": ItauProvider,
    "santander": SantanderProvider,
    "inter": InterProvider,
}

DEFAULT_PROVIDER_SETTINGS: dict[str, ProviderSettings] = {
    "banco_do_brasil": ProviderSettings(
        base_url="https://api.bb.com.br",
        auth_url="https://oauth.bb.com.br/oauth/token",
        sandbox_url="https://api.hm.bb.com.br",
    ),
    "bradesco": ProviderSettings(
        base_url="https://qrpix.bradesco.com.br",
        auth_url="https://qrpix.bradesco.com.br/auth/server/oauth/token",
        sandbox_url="https://qrpix-h.bradesco.com.br",
        requires_mtls=True,
    ),
    "itau": ProviderSettings(
        base_url="https://secure.api.itau",
        auth_url="https://sts.itau.com.br/api/oauth/token",
        sandbox_url="https://devportal.itau.com.br/sandboxapi",
        requires_mtls=True,
    ),
    "santander": ProviderSettings(
        base_url="https://trust-open.api.santander.com.br",
        auth_url="https://trust-open.api.santander.com.br/auth/oauth/v2/token",
        sandbox_url="https://trust-open-h.api.santander.com.br",
        requires_mtls=True,
    ),
    "inter": ProviderSettings(
        base_url="https://cdpj.partners.bancointer.com.br",
        auth_url="https://cdpj.partners.bancointer.com.br/oauth/v2/token",
        sandbox_url="https://cdpj-sandbox.partners.uatinter.co",
        requires_mtls=True,
    ),
}

MOCK_CONFIG = ProviderConfig(base_url="memory://sandbox", auth_url="memory://sandbox/oauth/token")


def provider_settings(settings: Settings) -> dict[str, ProviderSettings]:
    """Built-in defaults with explicitly set overrides applied on top."""
    merged: dict[str, ProviderSettings] = {}
    for code, default in DEFAULT_PROVIDER_SETTINGS.items():
        override = settings.providers.get(code)
        if override is None:
            merged[code] = default
        else:
            merged[code] = default.model_copy(update=override.model_dump(exclude_unset=True))

    for code in settings.providers:
        if code not in DEFAULT_PROVIDER_SETTINGS:
            logger.warning("Ignoring settings for unknown provider %s", code)
    return merged


def to_provider_config(provider: ProviderSettings, sandbox: bool) -> ProviderConfig:
    return ProviderConfig(
        base_url=provider.base_url,
        auth_url=provider.auth_url,
        sandbox_url=provider.sandbox_url,
        timeout=provider.timeout,
        max_retries=provider.max_retries,
        requires_mtls=provider.requires_mtls,
        sandbox=sandbox,
    )


def build_registry(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderRegistry:
    """
    Construct, initialize and register every enabled adapter.

    Args:
        transport: Optional httpx transport handed to every bank adapter
            (tests inject ``httpx.MockTransport`` here).
    """
    registry = ProviderRegistry()
    sandbox = not settings.is_production

    for code, provider in provider_settings(settings).items():
        if not provider.enabled:
            logger.info("Provider %s disabled by configuration", code)
            continue
        adapter = ADAPTERS[code](transport=transport)
        adapter.initialize(to_provider_config(provider, sandbox))
        registry.register(adapter, priority=provider.priority)

    if settings.enable_mock_provider:
        if settings.is_production:
            logger.warning("Sandbox provider requested in production; not registering it")
        else:
            mock = MockPixProvider()
            mock.initialize(MOCK_CONFIG)
            registry.register(mock, priority=-1)

    logger.info("Provider registry ready: %s (sandbox=%s)", ", ".join(registry) or "-", sandbox)
    return registry


def retry_budget(settings: Settings) -> dict[str, int]:
    """``max_retries`` per enabled bank, for ``ProviderManager``. The sandbox is never retried."""
    return {code: provider.max_retries for code, provider in provider_settings(settings).items() if provider.enabled}

def build_cipher(settings: Settings) -> CredentialCipher:
    """
    Raises:
        InvalidKeyError: When the key is missing, not base64, or not 32 bytes.
    """
    if not settings.encryption_key:
        raise InvalidKeyError("ENCRYPTION_KEY is not set")
    return CredentialCipher.from_base64_key(settings.encryption_key)
