from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUEST_COUNT = Counter("zapta_http_requests_total", "Total HTTP requests", ["path", "method", "status"])
REQUEST_LATENCY = Histogram("zapta_http_request_latency_seconds", "HTTP request latency", ["path", "method"])

AGENT_EXECUTIONS = Counter(
    "zapta_agent_executions_total", "Agent pipeline executions", ["status"]
)
AGENT_EXECUTION_SECONDS = Histogram(
    "zapta_agent_execution_seconds", "Agent pipeline wall time"
)
TOOL_CALLS = Counter("zapta_agent_tool_calls_total", "Tool calls made by agents", ["tool", "status"])


def metrics_response() -> Response:
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
