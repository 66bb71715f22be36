"""Prometheus metrics for voting, scoring and realtime observability."""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


VOTES_CAST_TOTAL = Counter(
    "gymkana_votes_cast_total",
    "Vote attempts by outcome",
    ["outcome"],
)

RESPONSES_SUBMITTED_TOTAL = Counter(
    "gymkana_responses_submitted_total",
    "Response submissions by outcome",
    ["outcome", "response_type"],
)

RANKINGS_COMPUTED_TOTAL = Counter(
    "gymkana_rankings_computed_total",
    "Ranking recomputations by result status",
    ["status"],
)

FEED_PROJECTIONS_TOTAL = Counter(
    "gymkana_feed_projections_total",
    "Response feed projections by result status",
    ["status"],
)

VIEW_REFRESH_SECONDS = Histogram(
    "gymkana_view_refresh_seconds",
    "Live view refresh latency",
    ["view"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

CHANGE_NOTIFICATIONS_PUBLISHED_TOTAL = Counter(
    "gymkana_change_notifications_published_total",
    "Change notifications published by record kind and operation",
    ["kind", "operation"],
)

ACTIVE_SUBSCRIPTIONS = Gauge(
    "gymkana_active_subscriptions",
    "Open change-notifier subscriptions in this process",
)

SSE_EVENTS_SENT_TOTAL = Counter(
    "gymkana_sse_events_sent_total",
    "SSE events sent by type",
    ["event_type"],
)
