"""Prometheus counters for the authentication core."""

from prometheus_client import CollectorRegistry, Counter, generate_latest

registry = CollectorRegistry()

challenges_created = Counter(
    "challenges_created_total",
    "LNURL-auth challenges issued",
    registry=registry,
)
login_attempts = Counter(
    "login_attempts_total",
    "Challenge completion attempts by result",
    ["result"],
    registry=registry,
)
gate_decisions = Counter(
    "gate_decisions_total",
    "Access gate decisions by outcome",
    ["outcome"],
    registry=registry,
)


def render_latest() -> bytes:
    return generate_latest(registry)
