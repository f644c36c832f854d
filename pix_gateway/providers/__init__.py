from pix_gateway.providers.errors import ErrorCode, ProviderError
from pix_gateway.providers.base import PixProvider
from pix_gateway.providers.registry import ProviderRegistry
from pix_gateway.providers.manager import HealthRecord, HealthSink, ProviderManager
from pix_gateway.providers.bb import BancoDoBrasilProvider
from pix_gateway.providers.bradesco import BradescoProvider
from pix_gateway.providers.inter import InterProvider
from pix_gateway.providers.itau import ItauProvider
from pix_gateway.providers.santander import SantanderProvider
from pix_gateway.providers.mock_provider import MockPixProvider

__all__ = [
    "BancoDoBrasilProvider",
    "BradescoProvider",
    "ErrorCode",
    "HealthRecord",
    "HealthSink",
    "InterProvider",
    "ItauProvider",
    "MockPixProvider",
    "PixProvider",
    "ProviderError",
    "ProviderManager",
    "ProviderRegistry",
    "SantanderProvider",
]
