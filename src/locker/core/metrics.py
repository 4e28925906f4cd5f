"""
Prometheus metrics for the locker.

Counts lock, unlock and fee-claim instructions by outcome and tracks how many
positions are currently held by lock authorities.
"""

from prometheus_client import REGISTRY, Counter, Gauge


class LockerMetrics:
    """Metrics for locker instructions."""

    def __init__(self, registry=None):
        self.registry = registry or REGISTRY

        self.locks_total = Counter(
            'locker_lock_instructions_total',
            'Lock instructions processed',
            ['status'],
            registry=self.registry
        )

        self.unlocks_total = Counter(
            'locker_unlock_instructions_total',
            'Unlock instructions processed',
            ['status'],
            registry=self.registry
        )

        self.fee_claims_total = Counter(
            'locker_fee_claim_instructions_total',
            'Fee claims delegated for locked positions',
            ['status'],
            registry=self.registry
        )

        self.fees_claimed = Counter(
            'locker_fees_claimed_total',
            'Fees paid out from locked positions in base units',
            ['token'],
            registry=self.registry
        )

        self.locked_positions = Gauge(
            'locker_locked_positions',
            'Positions currently held by lock authorities',
            registry=self.registry
        )

    def record_lock(self, status: str):
        self.locks_total.labels(status=status).inc()
        if status == "success":
            self.locked_positions.inc()

    def record_unlock(self, status: str):
        self.unlocks_total.labels(status=status).inc()
        if status == "success":
            self.locked_positions.dec()

    def record_fee_claim(self, status: str, amount_x: int = 0, amount_y: int = 0):
        self.fee_claims_total.labels(status=status).inc()
        if amount_x:
            self.fees_claimed.labels(token="x").inc(amount_x)
        if amount_y:
            self.fees_claimed.labels(token="y").inc(amount_y)
