"""
Lightweight metrics collection for the Verzot API.
Wraps prometheus_client counters for the match workflow.
"""
from __future__ import annotations

from prometheus_client import Counter, Info, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
MATCH_STATUS_TRANSITIONS = Counter(
    "vz_match_status_transitions_total",
    "Accepted match status transitions",
    ["from_status", "to_status"],
)
MATCH_CONFIRMATION_RESETS = Counter(
    "vz_match_confirmation_resets_total",
    "Result confirmations cleared by a score change",
    ["source"],
)
MATCH_CONFIRMATIONS = Counter(
    "vz_match_confirmations_total",
    "Result confirmations submitted",
    ["role"],
)
MATCH_RESULTS_FINALIZED = Counter(
    "vz_match_results_finalized_total",
    "Matches that reached full result confirmation",
)
MATCH_EVENT_OPERATIONS = Counter(
    "vz_match_event_operations_total",
    "Match event ledger operations",
    ["operation", "event_type"],
)
REGISTRATION_DECISIONS = Counter(
    "vz_registration_decisions_total",
    "Tournament registration status changes",
    ["status"],
)
NOTIFICATIONS_DISPATCHED = Counter(
    "vz_notifications_dispatched_total",
    "Notification dispatch attempts",
    ["type", "status"],
)

# ── Info ────────────────────────────────────────────────────────────────
SERVICE_INFO = Info("vz_service", "Service build information")


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
