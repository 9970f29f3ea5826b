"""Monitoring configuration for the engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Session metrics
practice_sessions = Counter(
    "rehearse_practice_sessions_total",
    "Total number of completed practice sessions",
    ["strategy"],
)

session_accuracy = Histogram(
    "rehearse_session_accuracy_percent",
    "Raw accuracy of completed practice sessions",
    buckets=[10, 25, 50, 70, 80, 90, 100],
)

# Matching metrics
word_verdicts = Counter(
    "rehearse_word_verdicts_total",
    "Total number of per-word verdicts emitted by the matcher",
    ["verdict"],
)

# Tempo metrics
discarded_tempo_samples = Counter(
    "rehearse_discarded_tempo_samples_total",
    "Latency samples discarded as recognition noise",
)

# Error metrics
input_errors = Counter(
    "rehearse_input_errors_total",
    "Total number of rejected caller inputs",
    ["error_type"],
)

# Database metrics
db_operations = Counter(
    "rehearse_db_operations_total",
    "Total number of database operations",
    ["operation_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
