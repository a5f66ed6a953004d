from magic_order.services.llm.base import LLMProvider, ProviderName
from magic_order.services.llm.factory import (
    CachingProvider,
    ProviderSettingsService,
    get_provider,
    parse_provider_name,
)

__all__ = [
    "LLMProvider",
    "ProviderName",
    "CachingProvider",
    "ProviderSettingsService",
    "get_provider",
    "parse_provider_name",
]
