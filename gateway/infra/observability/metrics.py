from prometheus_client import Counter, Histogram, make_asgi_app

# 低基数标签：使用路由模板（如 /storage/files/{file_name}），避免对象 key 导致高基数
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

STORAGE_ERRORS = Counter(
    "storage_errors_total",
    "Storage operation failures surfaced to callers",
    ["operation", "kind"],
)

# /metrics 端点 ASGI 应用
metrics_app = make_asgi_app()
