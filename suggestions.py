"""
Suggestion workflow: users propose new items or features, admins decide.

An approved ITEM suggestion becomes an inventory item. A denial is recorded as
a comment authored by the admin, so the reason shows up in the suggestion's
comment thread rather than on the suggestion itself.
"""
import logging
from datetime import datetime
from typing import List, Optional

from errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from inventory import build_item
from schemas import Comment, State, Suggestion, SuggestionStatus, SuggestionType, evolve, new_id, utcnow
from transitions import Transition, commit, require_admin, require_self_or_admin

logger = logging.getLogger(__name__)


def _pending(state: State, suggestion_id: str, type: Optional[SuggestionType] = None) -> Suggestion:
    suggestion = state.find_suggestion(suggestion_id)
    if suggestion is None:
        raise NotFoundError("Suggestion not found.")
    if type is not None and suggestion.type != type:
        raise InvalidStateError(f"Suggestion type is {suggestion.type.value}, expected {type.value}.")
    if suggestion.status != SuggestionStatus.PENDING:
        raise InvalidStateError(f"Suggestion was already {suggestion.status.value.lower()}.")
    return suggestion


def _replace(state: State, updated: Suggestion):
    return tuple(updated if s.id == updated.id else s for s in state.suggestions)


def _comment(suggestion_id: str, user_id: str, text: str, now: datetime) -> Comment:
    return Comment(id=new_id("comment"), suggestion_id=suggestion_id, user_id=user_id, text=text, timestamp=now)


def add_suggestion(
    state: State,
    user_id: str,
    type: SuggestionType,
    title: str,
    description: str = "",
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transition:
    require_self_or_admin(state, actor_id, user_id)
    if not title or not title.strip():
        raise ValidationError("Title is required.")
    suggestion = Suggestion(
        id=new_id("sug"),
        user_id=user_id,
        type=type,
        title=title.strip(),
        description=description,
        status=SuggestionStatus.PENDING,
        timestamp=now or utcnow(),
    )
    return Transition(commit(state, suggestions=(suggestion,) + state.suggestions), suggestion)


def approve_item_suggestion(
    state: State,
    suggestion_id: str,
    category: str,
    total_quantity: int,
    actor_id: Optional[str] = None,
) -> Transition:
    require_admin(state, actor_id)
    suggestion = _pending(state, suggestion_id, SuggestionType.ITEM)
    if not category or not category.strip():
        raise ValidationError("A category is required to approve an item suggestion.")
    if total_quantity <= 0:
        raise ValidationError("Quantity must be at least 1.")

    approved = evolve(suggestion, status=SuggestionStatus.APPROVED, category=category)
    item = build_item(suggestion.title, category, total_quantity)
    new_state = commit(state, suggestions=_replace(state, approved), items=state.items + (item,))
    logger.info("suggestion %s materialized as item %s", suggestion_id, item.id)
    return Transition(new_state, (approved, item))


def approve_feature_suggestion(state: State, suggestion_id: str, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    suggestion = _pending(state, suggestion_id, SuggestionType.FEATURE)
    approved = evolve(suggestion, status=SuggestionStatus.APPROVED)
    return Transition(commit(state, suggestions=_replace(state, approved)), approved)


def deny_suggestion(
    state: State,
    suggestion_id: str,
    reason: str,
    admin_id: str,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transition:
    require_admin(state, actor_id)
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to deny a suggestion.")
    suggestion = _pending(state, suggestion_id)
    denied = evolve(suggestion, status=SuggestionStatus.DENIED)
    comment = _comment(suggestion_id, admin_id, reason.strip(), now or utcnow())
    new_state = commit(
        state,
        suggestions=_replace(state, denied),
        comments=(comment,) + state.comments,
    )
    return Transition(new_state, (denied, comment))


def add_comment(
    state: State,
    suggestion_id: str,
    user_id: str,
    text: str,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Transition:
    suggestion = state.find_suggestion(suggestion_id)
    if suggestion is None:
        raise NotFoundError("Suggestion not found.")
    actor = require_self_or_admin(state, actor_id, user_id)
    if actor is not None and not actor.is_admin and actor.id != suggestion.user_id:
        raise ForbiddenError("Only admins and the author can comment on this suggestion.")
    if not text or not text.strip():
        raise ValidationError("Comment cannot be empty.")
    comment = _comment(suggestion_id, user_id, text.strip(), now or utcnow())
    return Transition(commit(state, comments=(comment,) + state.comments), comment)


def comments_for(state: State, suggestion_id: str) -> List[Comment]:
    """Oldest first, as a thread reads."""
    return list(reversed([c for c in state.comments if c.suggestion_id == suggestion_id]))
