"""Tracking providers - one per carrier portal."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    BrowserProvider,
    ElementNotFound,
    NavigationTimeout,
    ProducerAlreadyUsedError,
    Provider,
    ProviderError,
)
from .guilbault import GuilbaultProvider
from .minimax import MinimaxProvider

if TYPE_CHECKING:
    from truxtrack.core.config.models import AppConfig
    from truxtrack.core.session import SessionFactory


PROVIDER_CLASSES: dict[str, type[BrowserProvider]] = {
    GuilbaultProvider.provider_name: GuilbaultProvider,
    MinimaxProvider.provider_name: MinimaxProvider,
}


def build_providers(
    config: AppConfig,
    session_factory: SessionFactory | None = None,
) -> list[Provider]:
    """Instantiate the enabled providers in configured order.

    Args:
        config: Application configuration
        session_factory: Session factory override (default: Playwright sessions)

    Returns:
        Providers ready to race
    """
    from truxtrack.core.session import PlaywrightSession

    factory = session_factory or PlaywrightSession.factory(config.browser)

    providers: list[Provider] = []
    for provider_config in config.enabled_providers:
        provider_class = PROVIDER_CLASSES[provider_config.name.value]
        providers.append(
            provider_class(
                factory,
                url=provider_config.resolved_url,
                timeout=provider_config.timeout_seconds,
                max_attempts=provider_config.max_attempts,
            )
        )
    return providers


__all__ = [
    "Provider",
    "BrowserProvider",
    "ProviderError",
    "NavigationTimeout",
    "ElementNotFound",
    "ProducerAlreadyUsedError",
    "GuilbaultProvider",
    "MinimaxProvider",
    "PROVIDER_CLASSES",
    "build_providers",
]
