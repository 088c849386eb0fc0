from __future__ import annotations

"""
Prometheus metrics for the guild treasury.

We expose counters and gauges covering:
- proposals: submitted / sponsored by kind, processed by kind and outcome
- votes: by vote value
- emergency processing of stuck queue heads
- ragequits by mode (full / safe)
- external transfer failures by operation
- pool size: total shares and total loot

Only committed operations are counted (the engine publishes after commit);
transfer failures are counted when they abort an operation.
"""


from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

# Use a dedicated registry so embedding apps can choose to merge or expose it directly.
REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   kind: "funding" | "whitelist" | "guild_kick"
#   outcome: "passed" | "failed" | "emergency"
#   mode: "full" | "safe"
# ────────────────────────────────────────────────────────────────────────────────

PROPOSALS_SUBMITTED = Counter(
    "guild_proposals_submitted_total",
    "Total proposals submitted by kind.",
    labelnames=("kind",),
    registry=REGISTRY,
)

PROPOSALS_SPONSORED = Counter(
    "guild_proposals_sponsored_total",
    "Total proposals sponsored into the queue by kind.",
    labelnames=("kind",),
    registry=REGISTRY,
)

PROPOSALS_PROCESSED = Counter(
    "guild_proposals_processed_total",
    "Total proposals processed by kind and outcome.",
    labelnames=("kind", "outcome"),
    registry=REGISTRY,
)

PROPOSALS_CANCELLED = Counter(
    "guild_proposals_cancelled_total",
    "Total unsponsored proposals cancelled by their proposer.",
    registry=REGISTRY,
)

VOTES = Counter(
    "guild_votes_total",
    "Total votes cast by value.",
    labelnames=("vote",),
    registry=REGISTRY,
)

RAGEQUITS = Counter(
    "guild_ragequits_total",
    "Total ragequits by mode.",
    labelnames=("mode",),
    registry=REGISTRY,
)

TRANSFER_FAILURES = Counter(
    "guild_transfer_failures_total",
    "External asset transfer failures that aborted an operation.",
    labelnames=("operation",),
    registry=REGISTRY,
)

TOTAL_SHARES = Gauge(
    "guild_total_shares",
    "Current total shares.",
    registry=REGISTRY,
)

TOTAL_LOOT = Gauge(
    "guild_total_loot",
    "Current total loot.",
    registry=REGISTRY,
)


def observe_totals(total_shares: int, total_loot: int) -> None:
    TOTAL_SHARES.set(total_shares)
    TOTAL_LOOT.set(total_loot)


def render() -> bytes:
    """Prometheus text exposition of the guild registry."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "PROPOSALS_SUBMITTED",
    "PROPOSALS_SPONSORED",
    "PROPOSALS_PROCESSED",
    "PROPOSALS_CANCELLED",
    "VOTES",
    "RAGEQUITS",
    "TRANSFER_FAILURES",
    "TOTAL_SHARES",
    "TOTAL_LOOT",
    "observe_totals",
    "render",
]
