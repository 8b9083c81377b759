import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List

from ..errors import NotFoundError
from ..models.metric_models import utcnow
from ..models.provider_models import ProviderHealth, ProviderLimits, ProviderStatus

logger = logging.getLogger("prometheus_ops.provider_health")


def default_provider_cards() -> List[ProviderHealth]:
    return [
        ProviderHealth(
            name="HuggingFace",
            healthScore=1.0,
            limits=ProviderLimits(requestsPerMinute=60, requestsPerDay=10000, remaining=10000),
            capabilities=["text-generation", "classification", "summarization"],
        ),
        ProviderHealth(
            name="OpenAI",
            healthScore=0.95,
            limits=ProviderLimits(requestsPerMinute=3, requestsPerDay=200, remaining=200),
            capabilities=["chat", "embeddings", "image-generation"],
        ),
        ProviderHealth(
            name="Replicate",
            healthScore=0.98,
            limits=ProviderLimits(requestsPerMinute=10, requestsPerDay=1000, remaining=1000),
            capabilities=["model-deployment", "inference"],
        ),
    ]


class ProviderHealthBoard:
    """
    Operator-facing provider table: status, synthetic health score and
    advertised limits. Backs the health / toggle / reset-quota / optimize
    operations of the HTTP layer.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._providers: Dict[str, ProviderHealth] = {}
        self.reset()

    def reset(self) -> None:
        now = self._clock()
        self._providers = {}
        for card in default_provider_cards():
            card.lastCheck = now
            self._providers[card.name] = card

    def _get(self, provider: str) -> ProviderHealth:
        card = self._providers.get(provider)
        if card is None:
            raise NotFoundError("Provider", provider)
        return card

    def list_providers(self) -> List[ProviderHealth]:
        now = self._clock()
        return [card.model_copy(update={"lastCheck": now}) for card in self._providers.values()]

    def toggle(self, provider: str) -> ProviderHealth:
        card = self._get(provider)
        card.status = ProviderStatus.DOWN if card.status is ProviderStatus.ACTIVE else ProviderStatus.ACTIVE
        logger.info("Provider %s toggled to %s", provider, card.status.value)
        return card.model_copy()

    def reset_quota(self, provider: str) -> ProviderHealth:
        card = self._get(provider)
        card.limits.remaining = card.limits.requestsPerDay
        logger.info("Provider %s remaining quota restored to %d", provider, card.limits.remaining)
        return card.model_copy(deep=True)

    def sync_remaining(self, provider: str, used: int) -> None:
        card = self._providers.get(provider)
        if card is not None:
            card.limits.remaining = max(0, card.limits.requestsPerDay - used)

    async def optimize(self, delay_seconds: float = 0.0) -> List[ProviderHealth]:
        """Nudge every provider's health score up by 0.1, capped at 1.0."""
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        for card in self._providers.values():
            card.healthScore = min(1.0, round(card.healthScore + 0.1, 4))
        logger.info("System optimization completed")
        return self.list_providers()
