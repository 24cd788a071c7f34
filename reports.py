"""
Read-only views over the State: dashboard numbers and the optional
inventory report generator.
"""
import logging
from typing import Callable, Dict, Optional, Sequence

from schemas import Item, LogAction, LogEntry, LogStatus, State, User, UserStatus

logger = logging.getLogger(__name__)

LOW_STOCK_RATIO = 0.2

# (items, logs, users) -> formatted report
ReportGenerator = Callable[[Sequence[Item], Sequence[LogEntry], Sequence[User]], str]

NOT_CONFIGURED = (
    "Error: no report generator is configured. "
    "Configure one to get an AI written inventory summary."
)
GENERATION_FAILED = "An error occurred while generating the report. Please check the server logs for details."


def is_low_stock(item: Item) -> bool:
    return item.total_quantity > 0 and item.available_quantity / item.total_quantity < LOW_STOCK_RATIO


def inventory_stats(state: State) -> Dict[str, int]:
    return {
        "total_units": sum(i.total_quantity for i in state.items),
        "borrowed_units": sum(i.borrowed_quantity for i in state.items),
        "low_stock_items": sum(1 for i in state.items if is_low_stock(i)),
        "approved_users": sum(1 for u in state.users if u.status == UserStatus.APPROVED),
        "pending_users": sum(1 for u in state.users if u.status == UserStatus.PENDING),
        "pending_requests": sum(
            1 for l in state.logs if l.action == LogAction.BORROW and l.status == LogStatus.PENDING
        ),
        "return_requests": sum(1 for l in state.logs if l.is_outstanding and l.return_requested),
    }


def recent_activity(state: State, limit: int = 5):
    return sorted(state.logs, key=lambda l: l.timestamp, reverse=True)[:limit]


def generate_report(state: State, generator: Optional[ReportGenerator] = None) -> str:
    """Never raises: a missing or failing generator yields a placeholder text."""
    if generator is None:
        return NOT_CONFIGURED
    # users go out without their password hashes
    users = [u.model_copy(update={"password": ""}) for u in state.users]
    try:
        return generator(list(state.items), list(state.logs), users)
    except Exception:
        logger.exception("report generator failed")
        return GENERATION_FAILED
