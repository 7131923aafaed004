"""Provider exchange — the seam to upstream identity providers.

Learn: Turning an OAuth callback (code, state, id_token…) into a verified
profile is the deployment's business. Gatehouse only defines the shape of
that collaborator and the registry the callback route looks up. Each app
built by create_app() owns its registry on app.state.exchanges.
An exchange must have validated the provider's tokens before returning.
"""

from typing import Any, Optional, Protocol

from gatehouse.providers.assertions import ExternalAssertion


class ProviderExchange(Protocol):
    provider: str

    async def exchange(self, params: dict[str, Any]) -> ExternalAssertion:
        """Validate callback parameters with the provider and return the profile."""
        ...


class ExchangeRegistry:
    """Exchanges keyed by provider name."""

    def __init__(self) -> None:
        self._exchanges: dict[str, ProviderExchange] = {}

    def register(self, exchange: ProviderExchange) -> None:
        self._exchanges[exchange.provider] = exchange

    def get(self, provider: str) -> Optional[ProviderExchange]:
        return self._exchanges.get(provider)

    def clear(self) -> None:
        self._exchanges.clear()

