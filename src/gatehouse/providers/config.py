"""Which external providers this deployment accepts.

Learn: Which providers are on is decided once, from settings, and the
result is a plain value passed to the identity resolver's constructor.
Nothing consults a global registry at sign-in time.
"""

from dataclasses import dataclass

from gatehouse.config import Settings

GOOGLE = "google"
APPLE = "apple"


@dataclass(frozen=True)
class ProviderConfig:
    providers: tuple[str, ...] = (GOOGLE,)
    link_policy: str = "auto"  # "auto" | "verified_email"

    def is_enabled(self, provider: str) -> bool:
        return provider in self.providers


def load_provider_config(cfg: Settings) -> ProviderConfig:
    """Google is always offered; Apple only when its client and team ids are set."""
    providers = [GOOGLE]
    if cfg.apple_client_id and cfg.apple_team_id:
        providers.append(APPLE)
    return ProviderConfig(providers=tuple(providers), link_policy=cfg.link_policy)
