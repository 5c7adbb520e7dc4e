import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)


class Metrics:
    def __init__(self, enabled: bool = False) -> None:
        self._configure(enabled)

    def _configure(self, enabled: bool) -> None:
        self.enabled = enabled
        self.registry = CollectorRegistry(auto_describe=True)
        if not enabled:
            self.quotes = None
            self.formula_errors = None
            self.field_config_misses = None
            self.snapshot_reloads = None
            self.http_5xx = None
            self.http_latency = None
            return

        self.quotes = Counter(
            "quotes_computed_total",
            "Quotes computed by booking kind and pricing strategy.",
            ["booking_kind", "strategy"],
            registry=self.registry,
        )
        self.formula_errors = Counter(
            "formula_evaluation_errors_total",
            "Formula evaluations that failed and fell back to a default.",
            ["formula"],
            registry=self.registry,
        )
        self.field_config_misses = Counter(
            "field_config_misses_total",
            "Field selections without a matching configuration row.",
            ["category"],
            registry=self.registry,
        )
        self.snapshot_reloads = Counter(
            "pricing_snapshot_reloads_total",
            "Pricing snapshot reloads by outcome.",
            ["outcome"],
            registry=self.registry,
        )
        self.http_5xx = Counter(
            "http_5xx_total",
            "HTTP responses with status >= 500.",
            ["method", "path"],
            registry=self.registry,
        )
        self.http_latency = Histogram(
            "http_request_latency_seconds",
            "HTTP request latency in seconds.",
            ["method", "path", "status_class"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
            registry=self.registry,
        )

    def record_quote(self, booking_kind: str, strategy: str) -> None:
        if not self.enabled or self.quotes is None:
            return
        self.quotes.labels(booking_kind=booking_kind, strategy=strategy).inc()

    def record_formula_error(self, formula: str) -> None:
        if not self.enabled or self.formula_errors is None:
            return
        safe_formula = formula or "unknown"
        self.formula_errors.labels(formula=safe_formula).inc()

    def record_field_config_miss(self, category: str) -> None:
        if not self.enabled or self.field_config_misses is None:
            return
        safe_category = category or "unknown"
        self.field_config_misses.labels(category=safe_category).inc()

    def record_snapshot_reload(self, outcome: str) -> None:
        if not self.enabled or self.snapshot_reloads is None:
            return
        self.snapshot_reloads.labels(outcome=outcome or "unknown").inc()

    def record_http_5xx(self, method: str, path: str) -> None:
        if not self.enabled or self.http_5xx is None:
            return
        self.http_5xx.labels(method=method, path=path).inc()

    def record_http_latency(self, method: str, path: str, status_code: int, duration_seconds: float) -> None:
        if not self.enabled or self.http_latency is None:
            return
        status_class = f"{status_code // 100}xx" if status_code else "unknown"
        duration_seconds = max(0.0, float(duration_seconds))
        self.http_latency.labels(method=method, path=path, status_class=status_class).observe(
            duration_seconds
        )

    def render(self) -> tuple[bytes, str]:
        if not self.enabled:
            return b"metrics_disabled 1\n", "text/plain; version=0.0.4"
        try:
            return generate_latest(self.registry), CONTENT_TYPE_LATEST
        except Exception:  # noqa: BLE001
            logger.exception("metrics_render_failed")
            return b"metrics_render_failed 1\n", "text/plain; version=0.0.4"


metrics = Metrics(enabled=False)


def configure_metrics(enabled: bool) -> Metrics:
    metrics._configure(enabled)
    return metrics
