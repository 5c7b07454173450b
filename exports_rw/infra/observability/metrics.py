from prometheus_client import Counter, Histogram, make_asgi_app

# Low-cardinality labels: route templates (e.g. /content/{entity_id}), never raw ids
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

# outcome: exported | fetch_failed | vanished | copy_failed
EXPORT_OBJECTS = Counter(
    "export_objects_total",
    "Objects processed by bulk exports",
    ["outcome"],
)

WRITES = Counter(
    "entity_writes_total",
    "Entity writes by outcome",
    ["outcome"],
)

# ASGI app for the /metrics endpoint
metrics_app = make_asgi_app()
