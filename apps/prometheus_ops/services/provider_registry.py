import asyncio
import logging
import random
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from ..config import settings
from ..errors import NotFoundError, ProviderExhaustionError
from ..models.notification_models import Severity
from ..models.provider_models import ProviderQuota, ProviderStats, ProviderTaskResult
from ..models.metric_models import utcnow
from .notification_hub import NotificationHub

logger = logging.getLogger("prometheus_ops.providers")
tracer = trace.get_tracer(__name__)

# --------------------------------------------------------------------------
# Prometheus metrics
# --------------------------------------------------------------------------

PROVIDER_ATTEMPTS_TOTAL = Counter(
    "prometheus_ops_provider_attempts_total",
    "Provider attempts made by the fallback chain",
    ["provider", "result"],  # result: success | error | skipped_quota
)

PROVIDER_EXHAUSTED_TOTAL = Counter(
    "prometheus_ops_provider_exhausted_total",
    "Tasks for which every provider was skipped or failed",
)

PROVIDER_LATENCY_SECONDS = Histogram(
    "prometheus_ops_provider_latency_seconds",
    "Latency of individual provider calls",
    ["provider", "result"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

PROVIDER_REQUESTS = Gauge(
    "prometheus_ops_provider_requests",
    "Requests counted against each provider's quota since the last reset",
    ["provider"],
)

DEFAULT_PROVIDERS = ("HuggingFace", "OpenAI", "Replicate")

ProviderTask = Callable[[str], Awaitable[Any]]


class ProviderFallbackRegistry:
    """
    Ordered fallback across rate-limited AI providers.

    For each provider, in order:
      - requests >= limit  → skip (no quota mutation)
      - task succeeds      → requests+1, return immediately
      - task raises        → requests+1, errors+1, try the next provider

    Providers are tried strictly one at a time. When nothing succeeds a
    ProviderExhaustionError is raised; it is the only error callers see.
    """

    def __init__(
        self,
        providers: Sequence[str] = DEFAULT_PROVIDERS,
        limits: Optional[Dict[str, int]] = None,
        default_limit: int = settings.DEFAULT_PROVIDER_LIMIT,
        notifications: Optional[NotificationHub] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._configured_order: List[str] = list(providers)
        self.default_order: List[str] = list(providers)
        self.limits: Dict[str, int] = dict(settings.PROVIDER_LIMITS if limits is None else limits)
        self.default_limit = default_limit
        self.notifications = notifications
        self._clock = clock

        self._quotas: Dict[str, ProviderQuota] = {}
        self._initialize_quotas()

    def _initialize_quotas(self) -> None:
        now = self._clock()
        self._quotas = {
            provider: ProviderQuota(provider=provider, lastReset=now)
            for provider in self.default_order
        }
        for provider in self.default_order:
            PROVIDER_REQUESTS.labels(provider=provider).set(0)

    def _quota_for(self, provider: str) -> ProviderQuota:
        # Providers outside the default order get a quota on first use.
        quota = self._quotas.get(provider)
        if quota is None:
            quota = ProviderQuota(provider=provider, lastReset=self._clock())
            self._quotas[provider] = quota
        return quota

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_with_fallback(
        self,
        task: ProviderTask,
        providers: Optional[Sequence[str]] = None,
    ) -> Any:
        order = list(providers) if providers is not None else list(self.default_order)
        skipped: List[str] = []
        failed: List[str] = []

        with tracer.start_as_current_span("prometheus_ops.providers.execute_with_fallback") as span:
            span.set_attribute("prometheus_ops.providers.order", ",".join(order))

            for provider in order:
                quota = self._quota_for(provider)
                if quota.requests >= self.get_provider_limit(provider):
                    logger.warning("%s quota exceeded", provider)
                    PROVIDER_ATTEMPTS_TOTAL.labels(provider=provider, result="skipped_quota").inc()
                    skipped.append(provider)
                    continue

                start_time = time.time()
                try:
                    result = await task(provider)
                except Exception as exc:  # noqa: BLE001
                    PROVIDER_LATENCY_SECONDS.labels(provider=provider, result="error").observe(
                        time.time() - start_time
                    )
                    PROVIDER_ATTEMPTS_TOTAL.labels(provider=provider, result="error").inc()
                    span.record_exception(exc)
                    logger.error("%s execution failed: %s", provider, exc)
                    self.update_quota(provider, False)
                    failed.append(provider)
                    if self.notifications is not None:
                        self.notifications.notify_ai_provider_issue(
                            provider,
                            message=f"{provider} execution failed, falling back",
                            error_type=type(exc).__name__,
                            details=str(exc),
                        )
                    continue

                PROVIDER_LATENCY_SECONDS.labels(provider=provider, result="success").observe(
                    time.time() - start_time
                )
                PROVIDER_ATTEMPTS_TOTAL.labels(provider=provider, result="success").inc()
                self.update_quota(provider, True)
                span.set_attribute("prometheus_ops.providers.selected", provider)
                return result

            PROVIDER_EXHAUSTED_TOTAL.inc()
            span.set_attribute("prometheus_ops.providers.exhausted", True)

        error = ProviderExhaustionError(order, skipped, failed)
        logger.error(str(error))
        if self.notifications is not None:
            self.notifications.notify_ai_provider_issue(
                "all",
                message="All providers failed to execute task",
                error_type="ProviderExhaustionError",
                details={"skipped": skipped, "failed": failed},
                severity=Severity.CRITICAL,
            )
        raise error

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def update_quota(self, provider: str, success: bool) -> ProviderQuota:
        quota = self._quota_for(provider)
        quota.requests += 1
        if not success:
            quota.errors += 1

        PROVIDER_REQUESTS.labels(provider=provider).set(quota.requests)
        logger.info(
            "Updated quota for %s: requests=%d errors=%d",
            provider,
            quota.requests,
            quota.errors,
        )
        return quota

    def get_provider_limit(self, provider: str) -> int:
        return self.limits.get(provider, self.default_limit)

    def get_quota(self, provider: str) -> ProviderQuota:
        quota = self._quotas.get(provider)
        if quota is None:
            raise NotFoundError("Provider", provider)
        return quota.model_copy()

    def reset_quotas(self) -> None:
        self._initialize_quotas()
        logger.info("All provider quotas reset")

    def reset(self) -> None:
        """Restore the configured provider order and zero every quota."""
        self.default_order = list(self._configured_order)
        self._initialize_quotas()

    def reset_quota(self, provider: str) -> ProviderQuota:
        if provider not in self._quotas:
            raise NotFoundError("Provider", provider)
        self._quotas[provider] = ProviderQuota(provider=provider, lastReset=self._clock())
        PROVIDER_REQUESTS.labels(provider=provider).set(0)
        logger.info("Quota reset for %s", provider)
        return self._quotas[provider].model_copy()

    def get_provider_stats(self) -> Dict[str, ProviderStats]:
        stats: Dict[str, ProviderStats] = {}
        for provider, quota in self._quotas.items():
            if quota.requests > 0:
                success_rate = (quota.requests - quota.errors) / quota.requests * 100
            else:
                success_rate = 100.0
            stats[provider] = ProviderStats(
                requests=quota.requests,
                errors=quota.errors,
                successRate=success_rate,
            )
        return stats

    def total_requests(self) -> int:
        return sum(q.requests for q in self._quotas.values())

    def error_rate(self) -> float:
        requests = self.total_requests()
        if requests == 0:
            return 0.0
        return sum(q.errors for q in self._quotas.values()) / requests

    def quota_usage(self) -> float:
        """Highest percentage of its limit any provider has consumed."""
        usages = [
            q.requests / self.get_provider_limit(p) * 100
            for p, q in self._quotas.items()
            if self.get_provider_limit(p) > 0
        ]
        return max(usages, default=0.0)


def simulated_provider_task(
    payload: Any,
    failure_rate: float = settings.PROVIDER_FAILURE_RATE,
    max_latency_seconds: float = settings.PROVIDER_MAX_LATENCY_SECONDS,
) -> ProviderTask:
    """
    Build a demo task that stands in for a real provider API call:
    random latency, random failure at ``failure_rate``.
    """

    async def _run(provider: str) -> ProviderTaskResult:
        started = time.time()
        await asyncio.sleep(random.uniform(0, max_latency_seconds))
        if random.random() < failure_rate:
            raise RuntimeError("Provider API error")
        return ProviderTaskResult(
            provider=provider,
            result=f"Task executed by {provider}: {payload}",
            latency_ms=(time.time() - started) * 1000,
        )

    return _run
