from prometheus_client import Counter, Histogram

EVENTS_TOTAL = Counter(
    "webhook_events_total",
    "Total inbound webhook deliveries by terminal outcome",
    ["provider", "result"],
)

PROCESSING_DURATION = Histogram(
    "webhook_processing_duration_seconds",
    "Inbound delivery processing duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

PROCESSING_ERRORS_TOTAL = Counter(
    "webhook_processing_errors_total",
    "Total number of unexpected inbound processing errors",
)

OUTBOUND_DELIVERIES_TOTAL = Counter(
    "webhook_outbound_deliveries_total",
    "Outbound webhook delivery attempts by result",
    ["result"],
)
