"""External identity providers: assertions, configuration, exchanges."""

from gatehouse.providers.assertions import (
    Assertion,
    ExternalAssertion,
    LocalAssertion,
    ProviderTokens,
)
from gatehouse.providers.config import APPLE, GOOGLE, ProviderConfig, load_provider_config
from gatehouse.providers.exchange import ExchangeRegistry, ProviderExchange

__all__ = [
    "APPLE",
    "GOOGLE",
    "Assertion",
    "ExchangeRegistry",
    "ExternalAssertion",
    "LocalAssertion",
    "ProviderConfig",
    "ProviderExchange",
    "ProviderTokens",
    "load_provider_config",
]
