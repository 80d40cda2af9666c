from prometheus_client import Counter, Histogram

REQUEST_LATENCY = Histogram(
    "taskflow_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route", "status"],
)
NOTIFICATIONS_CREATED = Counter(
    "taskflow_notifications_created_total",
    "Notifications written by the router",
    ["type"],
)
NOTIFICATION_FAILURES = Counter(
    "taskflow_notification_failures_total",
    "Notification batches dropped because of an error",
    ["type"],
)
AUDIT_FAILURES = Counter(
    "taskflow_audit_failures_total",
    "Audit log writes dropped because of an error",
)
EVENT_HANDLER_FAILURES = Counter(
    "taskflow_event_handler_failures_total",
    "Event handler invocations that raised",
    ["handler"],
)
LOGIN_ATTEMPTS = Counter(
    "taskflow_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)
CACHE_LOOKUPS = Counter(
    "taskflow_cache_lookups_total",
    "Reference data cache lookups",
    ["result"],
)
