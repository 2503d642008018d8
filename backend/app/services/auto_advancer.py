"""
Time-based order progression.

A sweep promotes orders that have sat in a status longer than its threshold.
It keeps no state between runs: every run re-reads the orders table, so running
it again with nothing due changes nothing.
"""
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from filelock import FileLock, Timeout
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.logger import logger
from app.models.order import OrderStatus
from app.realtime.change_feed import ORDERS_TABLE, UPDATE, ChangeEvent, ChangeFeed, change_feed
from app.repositories.order_repo import OrderRepository
from app.services.order_status import can_transition
from app.utils.clock import utcnow
from app.utils.transactions import smart_transaction

CLOCK_COLUMNS = ("created_at", "status_changed_at")


@dataclass(frozen=True)
class AdvanceRule:
    from_status: OrderStatus
    to_status: OrderStatus
    after: timedelta


def default_rules() -> List[AdvanceRule]:
    return [
        AdvanceRule(
            OrderStatus.PENDING,
            OrderStatus.PREPARING,
            timedelta(minutes=settings.PENDING_TO_PREPARING_MINUTES),
        ),
        AdvanceRule(
            OrderStatus.PREPARING,
            OrderStatus.READY_FOR_PICKUP,
            timedelta(minutes=settings.PREPARING_TO_READY_MINUTES),
        ),
        AdvanceRule(
            OrderStatus.READY_FOR_PICKUP,
            OrderStatus.COMPLETED,
            timedelta(minutes=settings.READY_TO_COMPLETED_MINUTES),
        ),
    ]


@dataclass
class RuleOutcome:
    from_status: str
    to_status: str
    updated: int = 0
    error: Optional[str] = None


@dataclass
class SweepReport:
    ran_at: datetime
    outcomes: List[RuleOutcome] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.skipped and all(o.error is None for o in self.outcomes)

    @property
    def total_updated(self) -> int:
        return sum(o.updated for o in self.outcomes)

    @property
    def errors(self) -> List[str]:
        return [f"{o.from_status}->{o.to_status}: {o.error}" for o in self.outcomes if o.error]

    def as_dict(self) -> Dict:
        if self.skipped:
            message = "Another sweep is in progress"
        elif self.ok:
            message = "Order statuses updated successfully"
        else:
            message = "Some order status updates failed"
        return {
            "message": message,
            "ran_at": self.ran_at.isoformat(),
            "updated": self.total_updated,
            "rules": [
                {
                    "from": o.from_status,
                    "to": o.to_status,
                    "updated": o.updated,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
            "errors": self.errors,
        }


class AutoAdvancer:
    def __init__(
        self,
        db: Session,
        rules: Optional[List[AdvanceRule]] = None,
        clock_column: Optional[str] = None,
        feed: ChangeFeed = None,
    ):
        self.db = db
        self.rules = rules if rules is not None else default_rules()
        self.clock_column = clock_column or settings.AUTO_ADVANCE_CLOCK
        if self.clock_column not in CLOCK_COLUMNS:
            raise ValueError(f"Unknown auto-advance clock: {self.clock_column}")
        for rule in self.rules:
            if not can_transition(rule.from_status, rule.to_status):
                raise ValueError(
                    f"Rule {rule.from_status.value}->{rule.to_status.value} is not a legal transition"
                )
        self.feed = feed or change_feed
        self.orders = OrderRepository(db)

    def _now(self) -> datetime:
        return utcnow()

    def run(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Apply every rule once. A failing rule is recorded in the report and the
        remaining rules still run.
        """
        now = now or self._now()
        report = SweepReport(ran_at=now)

        # snapshot candidates first so one sweep moves an order at most one step
        due: Dict[AdvanceRule, List[int]] = {}
        for rule in self.rules:
            try:
                due[rule] = self.orders.ids_due_for_advance(
                    rule.from_status.value, now - rule.after, self.clock_column
                )
            except SQLAlchemyError as e:
                logger.exception("auto-advance lookup failed for {}", rule.from_status.value)
                report.outcomes.append(
                    RuleOutcome(rule.from_status.value, rule.to_status.value, error=str(e))
                )
        self.db.rollback()

        for rule in self.rules:
            if rule not in due:
                continue
            outcome = RuleOutcome(rule.from_status.value, rule.to_status.value)
            ids = due[rule]
            try:
                with smart_transaction(self.db):
                    outcome.updated = self.orders.advance_many(
                        ids, rule.from_status.value, rule.to_status.value, now
                    )
            except SQLAlchemyError as e:
                logger.exception(
                    "auto-advance {} -> {} failed", rule.from_status.value, rule.to_status.value
                )
                outcome.error = str(e)
                report.outcomes.append(outcome)
                continue
            report.outcomes.append(outcome)
            if outcome.updated:
                # ids already moved by someone else only cause a spurious refresh
                self.feed.publish_many(ChangeEvent(ORDERS_TABLE, UPDATE, oid) for oid in ids)
                logger.info(
                    "auto-advanced {} order(s) {} -> {}",
                    outcome.updated, rule.from_status.value, rule.to_status.value,
                )
        return report


def _lock_path() -> str:
    locks_dir = os.path.join(tempfile.gettempdir(), "canteen_locks")
    os.makedirs(locks_dir, exist_ok=True)
    return os.path.join(locks_dir, "auto_advance.lock")


def run_sweep(db: Session, now: Optional[datetime] = None, lock_timeout: Optional[float] = None) -> SweepReport:
    """Run one sweep unless another process is already running one."""
    timeout = settings.SWEEP_LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
    lock = FileLock(_lock_path())
    try:
        with lock.acquire(timeout=timeout):
            return AutoAdvancer(db).run(now=now)
    except Timeout:
        logger.warning("auto-advance sweep skipped: lock held by another worker")
        return SweepReport(ran_at=now or utcnow(), skipped=True)
