# ===================================================
# Meta Platform - Prometheus Custom Metrics
# HTTP, Bot, Tool, LLM and Queue metrics
# ===================================================

from prometheus_client import Counter, Histogram, Gauge, Summary

# ========== HTTP Request Metrics ==========

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

http_active_connections = Gauge(
    "http_active_connections",
    "Current number of active HTTP connections"
)

http_request_size_bytes = Summary(
    "http_request_size_bytes",
    "HTTP request body size in bytes",
    ["method", "endpoint"]
)


# ========== Bot Metrics ==========

bot_messages_total = Counter(
    "bot_messages_total",
    "Bot messages processed",
    ["status"]  # status: success, error
)

bot_message_duration_seconds = Histogram(
    "bot_message_duration_seconds",
    "End-to-end bot message processing time",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0]
)

tool_executions_total = Counter(
    "tool_executions_total",
    "Bot tool executions",
    ["tool_type", "status"]
)

intent_detections_total = Counter(
    "intent_detections_total",
    "Intent detection runs",
    ["source"]  # source: llm, keyword, none
)


# ========== LLM Metrics ==========

llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM API calls",
    ["model", "status"]
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["model"]
)


# ========== Queue Metrics ==========

queue_events_published_total = Counter(
    "queue_events_published_total",
    "Events pushed onto Redis queues",
    ["queue"]
)

queue_jobs_processed_total = Counter(
    "queue_jobs_processed_total",
    "Jobs taken off Redis queues by workers",
    ["queue", "status"]
)

application_builds_total = Counter(
    "application_builds_total",
    "Application build attempts",
    ["status"]  # status: built, failed
)
