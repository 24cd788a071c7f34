"""Transition result, versioned commit and the acting-user guards."""
from typing import Any, NamedTuple, Optional, Tuple

from errors import ForbiddenError
from schemas import State, User, UserStatus


class Transition(NamedTuple):
    state: State
    result: Any = None
    events: Tuple[Any, ...] = ()


def commit(state: State, **collections) -> State:
    """New aggregate with the given collections replaced and the version bumped."""
    return state.model_copy(update={**collections, "version": state.version + 1})


def acting_user(state: State, actor_id: Optional[str]) -> Optional[User]:
    """None for trusted system callers; otherwise an approved user or ForbiddenError."""
    if actor_id is None:
        return None
    actor = state.find_user(actor_id)
    if actor is None or actor.status != UserStatus.APPROVED:
        raise ForbiddenError("Only approved accounts can do this")
    return actor


def require_admin(state: State, actor_id: Optional[str]) -> Optional[User]:
    actor = acting_user(state, actor_id)
    if actor is not None and not actor.is_admin:
        raise ForbiddenError("Admins only")
    return actor


def require_self_or_admin(state: State, actor_id: Optional[str], owner_id: str) -> Optional[User]:
    actor = acting_user(state, actor_id)
    if actor is not None and not actor.is_admin and actor.id != owner_id:
        raise ForbiddenError("User mismatch")
    return actor
