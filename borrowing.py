"""
Borrow lifecycle.

    PENDING --approve--> APPROVED --complete_return--> RETURNED
    PENDING --deny-----> DENIED

`returnRequested` is a flag on APPROVED logs. Stock is only committed at
approval: pending requests hold nothing, so two requests may compete for the
same units and the approval that comes second is rejected.
"""
import logging
from datetime import datetime
from typing import Optional

from errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from notifications import notification
from schemas import LogAction, LogEntry, LogStatus, NotificationType, State, UserStatus, evolve, new_id, utcnow
from transitions import Transition, commit, require_admin, require_self_or_admin

logger = logging.getLogger(__name__)


def _borrow_log(state: State, log_id: str) -> LogEntry:
    log = state.find_log(log_id)
    if log is None or log.action != LogAction.BORROW:
        raise NotFoundError("Borrow request not found.")
    return log


def _expect(log: LogEntry, status: LogStatus) -> None:
    if log.status != status:
        current = log.status.value if log.status else "unknown"
        raise InvalidStateError(f"Borrow request is {current}, expected {status.value}.")


def _replace_log(state: State, updated: LogEntry):
    return tuple(updated if l.id == updated.id else l for l in state.logs)


def request_borrow(
    state: State,
    user_id: str,
    item_id: str,
    quantity: int,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transition:
    require_self_or_admin(state, actor_id, user_id)
    if quantity <= 0:
        raise ValidationError("Quantity must be at least 1.")
    item = state.find_item(item_id)
    if item is None:
        raise NotFoundError("Item not found.")
    user = state.find_user(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    if user.status != UserStatus.APPROVED:
        raise InvalidStateError("Only approved accounts can borrow items.")
    if item.available_quantity < quantity:
        raise InsufficientStockError(
            f"Not enough {item.name} in stock: {item.available_quantity} available, {quantity} requested."
        )

    now = now or utcnow()
    log = LogEntry(
        id=new_id("log"),
        user_id=user_id,
        item_id=item_id,
        quantity=quantity,
        timestamp=now,
        action=LogAction.BORROW,
        status=LogStatus.PENDING,
    )
    notice = notification(
        f"New borrow request from {user.full_name} for {quantity}x {item.name}.",
        NotificationType.NEW_BORROW_REQUEST,
        now,
        related_log_id=log.id,
    )
    new_state = commit(
        state,
        logs=(log,) + state.logs,
        notifications=(notice,) + state.notifications,
    )
    return Transition(new_state, log)


def approve_borrow(state: State, log_id: str, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    log = _borrow_log(state, log_id)
    _expect(log, LogStatus.PENDING)
    item = state.find_item(log.item_id)
    if item is None:
        raise NotFoundError("The requested item no longer exists.")
    if item.available_quantity < log.quantity:
        raise InsufficientStockError(
            f"Not enough {item.name} in stock to approve this request: "
            f"{item.available_quantity} available, {log.quantity} requested."
        )

    approved = evolve(log, status=LogStatus.APPROVED)
    lent = evolve(item, available_quantity=item.available_quantity - log.quantity)
    items = tuple(lent if i.id == item.id else i for i in state.items)
    return Transition(commit(state, items=items, logs=_replace_log(state, approved)), approved)


def deny_borrow(state: State, log_id: str, reason: str, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to deny a request.")
    log = _borrow_log(state, log_id)
    _expect(log, LogStatus.PENDING)
    denied = evolve(log, status=LogStatus.DENIED, admin_notes=reason.strip())
    return Transition(commit(state, logs=_replace_log(state, denied)), denied)


def request_return(state: State, log_id: str, actor_id: Optional[str] = None, now: Optional[datetime] = None) -> Transition:
    log = _borrow_log(state, log_id)
    require_self_or_admin(state, actor_id, log.user_id)
    _expect(log, LogStatus.APPROVED)

    flagged = evolve(log, return_requested=True)
    user = state.find_user(log.user_id)
    item = state.find_item(log.item_id)
    who = user.full_name if user else "A user"
    what = item.name if item else "an item"
    notice = notification(
        f"{who} requested to return {log.quantity}x {what}.",
        NotificationType.RETURN_REQUEST,
        now or utcnow(),
        related_log_id=log.id,
    )
    new_state = commit(
        state,
        logs=_replace_log(state, flagged),
        notifications=(notice,) + state.notifications,
    )
    return Transition(new_state, flagged)


def complete_return(
    state: State,
    log_id: str,
    admin_notes: str = "",
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transition:
    require_admin(state, actor_id)
    log = _borrow_log(state, log_id)
    _expect(log, LogStatus.APPROVED)

    returned = evolve(log, status=LogStatus.RETURNED)
    return_log = LogEntry(
        id=new_id("log"),
        user_id=log.user_id,
        item_id=log.item_id,
        quantity=log.quantity,
        timestamp=now or utcnow(),
        action=LogAction.RETURN,
        related_log_id=log.id,
        admin_notes=admin_notes or None,
    )
    logs = (return_log,) + _replace_log(state, returned)

    items = state.items
    item = state.find_item(log.item_id)
    if item is None:
        logger.warning("return of %s closes a loan on deleted item %s", log.id, log.item_id)
    else:
        credited = min(item.total_quantity, item.available_quantity + log.quantity)
        if credited < item.available_quantity + log.quantity:
            logger.warning("return of %s clamped %s availability at %d", log.id, item.id, item.total_quantity)
        restocked = evolve(item, available_quantity=credited)
        items = tuple(restocked if i.id == item.id else i for i in state.items)

    return Transition(commit(state, items=items, logs=logs), return_log)


def pending_requests(state: State):
    return [l for l in state.logs if l.action == LogAction.BORROW and l.status == LogStatus.PENDING]


def loans_for_user(state: State, user_id: str):
    return [l for l in state.logs if l.user_id == user_id and l.action == LogAction.BORROW]
