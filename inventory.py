"""
Inventory ledger: owns Item quantities.

Invariants kept here:
- 0 <= availableQuantity <= totalQuantity for every item
- totalQuantity - availableQuantity == units on APPROVED borrow logs
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pydantic

from errors import ConflictError, NotFoundError, ValidationError
from schemas import Item, ItemDraft, LogAction, LogStatus, State, evolve, new_id
from transitions import Transition, commit, require_admin

logger = logging.getLogger(__name__)


def build_item(name: str, category: str, total_quantity: int) -> Item:
    if total_quantity < 0:
        raise ValidationError("Total quantity cannot be negative.")
    return Item(
        id=new_id("item"),
        name=name,
        category=category,
        total_quantity=total_quantity,
        available_quantity=total_quantity,
    )


def add_item(state: State, name: str, category: str, total_quantity: int, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    item = build_item(name, category, total_quantity)
    logger.debug("adding item %s (%s x%d)", item.id, name, total_quantity)
    return Transition(commit(state, items=state.items + (item,)), item)


def edit_item(
    state: State,
    item_id: str,
    name: str,
    category: str,
    total_quantity: int,
    actor_id: Optional[str] = None,
) -> Transition:
    require_admin(state, actor_id)
    current = state.find_item(item_id)
    if current is None:
        raise NotFoundError("Item to edit does not exist.")
    borrowed = current.borrowed_quantity
    if total_quantity < borrowed:
        raise ValidationError("Total quantity cannot be less than the number of items currently borrowed.")
    updated = evolve(
        current,
        name=name,
        category=category,
        total_quantity=total_quantity,
        available_quantity=total_quantity - borrowed,
    )
    items = tuple(updated if i.id == item_id else i for i in state.items)
    return Transition(commit(state, items=items), updated)


def has_outstanding_loans(state: State, item_id: str) -> bool:
    return any(l.item_id == item_id and l.is_outstanding for l in state.logs)


def delete_item(state: State, item_id: str, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    item = state.find_item(item_id)
    if item is None:
        raise NotFoundError("Item not found.")
    if has_outstanding_loans(state, item_id):
        raise ConflictError(f"Cannot delete {item.name}: units are still on loan.")
    items = tuple(i for i in state.items if i.id != item_id)
    return Transition(commit(state, items=items), item)


def importable_drafts(records: Iterable[Dict[str, Any]]) -> Tuple[List[ItemDraft], int]:
    """Parse raw records into drafts, skipping the invalid ones. Returns (drafts, skipped)."""
    drafts = []
    skipped = 0
    for record in records:
        try:
            drafts.append(ItemDraft.model_validate(record))
        except pydantic.ValidationError:
            skipped += 1
    return drafts, skipped


def import_items(state: State, drafts: Iterable[ItemDraft], actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    new_items = []
    for draft in drafts:
        if not draft.name.strip() or not draft.category.strip() or draft.total_quantity <= 0:
            raise ValidationError(f"Cannot import {draft.name!r}: name, category and a positive quantity are required.")
        new_items.append(build_item(draft.name, draft.category, draft.total_quantity))
    return Transition(commit(state, items=state.items + tuple(new_items)), new_items)


# ---------------------------
# Ledger replay
# ---------------------------
def outstanding_quantity(state: State, item_id: str) -> int:
    return sum(
        l.quantity
        for l in state.logs
        if l.item_id == item_id and l.action == LogAction.BORROW and l.status == LogStatus.APPROVED
    )


def ledger_discrepancies(state: State) -> List[Tuple[Item, int]]:
    """Items whose lent-out count disagrees with the log, paired with the replayed count."""
    out = []
    for item in state.items:
        lent = outstanding_quantity(state, item.id)
        if item.borrowed_quantity != lent:
            out.append((item, lent))
    return out


def search_items(state: State, text: str = "", category: Optional[str] = None) -> List[Item]:
    t = text.lower().strip()
    return [
        i
        for i in state.items
        if (not t or t in i.name.lower() or t in i.category.lower())
        and (category is None or i.category == category)
    ]
