"""Prometheus metrics for the generation pipeline."""

from prometheus_client import Counter, Histogram

# Job execution metrics
generation_jobs_total = Counter(
    "generation_jobs_total",
    "Total generation job tries by outcome",
    ["outcome"],
)

generation_job_latency_ms = Histogram(
    "generation_job_latency_ms",
    "Generation job try latency in milliseconds",
    ["outcome"],
    buckets=[100, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000],
)

generation_job_retries_total = Counter(
    "generation_job_retries_total",
    "Total generation job retries scheduled",
)

generation_attempts_reaped_total = Counter(
    "generation_attempts_reaped_total",
    "Total stuck generation attempts marked failed",
)

generation_limit_rejections_total = Counter(
    "generation_limit_rejections_total",
    "Total generation requests rejected by the monthly limit",
)

# Model usage metrics
ai_tokens_total = Counter(
    "ai_tokens_total",
    "Total language model tokens",
    ["model", "kind"],
)

ai_cost_usd_total = Counter(
    "ai_cost_usd_total",
    "Total estimated language model cost in USD",
    ["model"],
)


class PrometheusGenerationMetrics:
    """Prometheus-based generation metrics implementation."""

    def record_job(self, outcome: str, latency_ms: float) -> None:
        """Record a finished job try."""
        generation_jobs_total.labels(outcome=outcome).inc()
        generation_job_latency_ms.labels(outcome=outcome).observe(latency_ms)

    def record_usage(
        self, model: str, prompt_tokens: int, completion_tokens: int, cost_usd: float
    ) -> None:
        """Record model token usage and cost."""
        ai_tokens_total.labels(model=model, kind="prompt").inc(prompt_tokens)
        ai_tokens_total.labels(model=model, kind="completion").inc(completion_tokens)
        ai_cost_usd_total.labels(model=model).inc(cost_usd)

    def inc_retry(self) -> None:
        """Increment job retry counter."""
        generation_job_retries_total.inc()

    def inc_reaped(self, count: int) -> None:
        """Increment reaped attempt counter."""
        if count:
            generation_attempts_reaped_total.inc(count)

    def inc_limit_rejection(self) -> None:
        """Increment rejected reservation counter."""
        generation_limit_rejections_total.inc()
