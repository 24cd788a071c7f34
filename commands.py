"""
Commands and the reducer.

apply(state, command) -> Transition is pure: it reads one State, validates the
command against it and returns the next State. Persistence and email delivery
happen around it in tracker.py, never inside.
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

import accounts
import borrowing
import inventory
import notifications
import suggestions
from accounts import Registration, UserChanges
from schemas import ItemDraft, State, SuggestionType
from transitions import Transition


class Command(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    actor_id: Optional[str] = Field(None, description="Acting user; None for trusted system callers")


# Inventory ledger
class AddItem(Command):
    type: Literal["add_item"] = "add_item"
    name: str
    category: str
    total_quantity: int


class EditItem(Command):
    type: Literal["edit_item"] = "edit_item"
    item_id: str
    name: str
    category: str
    total_quantity: int


class DeleteItem(Command):
    type: Literal["delete_item"] = "delete_item"
    item_id: str


class ImportItems(Command):
    type: Literal["import_items"] = "import_items"
    drafts: List[ItemDraft]


# Borrow lifecycle
class RequestBorrow(Command):
    type: Literal["request_borrow"] = "request_borrow"
    user_id: str
    item_id: str
    quantity: int


class ApproveBorrow(Command):
    type: Literal["approve_borrow"] = "approve_borrow"
    log_id: str


class DenyBorrow(Command):
    type: Literal["deny_borrow"] = "deny_borrow"
    log_id: str
    reason: str


class RequestReturn(Command):
    type: Literal["request_return"] = "request_return"
    log_id: str


class CompleteReturn(Command):
    type: Literal["complete_return"] = "complete_return"
    log_id: str
    admin_notes: str = ""


# User lifecycle
class RegisterUser(Command):
    type: Literal["register_user"] = "register_user"
    registration: Registration


class ApproveUser(Command):
    type: Literal["approve_user"] = "approve_user"
    user_id: str


class DenyUser(Command):
    type: Literal["deny_user"] = "deny_user"
    user_id: str


class EditUser(Command):
    type: Literal["edit_user"] = "edit_user"
    user_id: str
    changes: UserChanges


class DeleteUser(Command):
    type: Literal["delete_user"] = "delete_user"
    user_id: str


# Suggestions
class AddSuggestion(Command):
    type: Literal["add_suggestion"] = "add_suggestion"
    user_id: str
    suggestion_type: SuggestionType
    title: str
    description: str = ""


class ApproveItemSuggestion(Command):
    type: Literal["approve_item_suggestion"] = "approve_item_suggestion"
    suggestion_id: str
    category: str
    total_quantity: int


class ApproveFeatureSuggestion(Command):
    type: Literal["approve_feature_suggestion"] = "approve_feature_suggestion"
    suggestion_id: str


class DenySuggestion(Command):
    type: Literal["deny_suggestion"] = "deny_suggestion"
    suggestion_id: str
    reason: str
    admin_id: str


class AddComment(Command):
    type: Literal["add_comment"] = "add_comment"
    suggestion_id: str
    user_id: str
    text: str


# Notifications
class MarkNotificationsRead(Command):
    type: Literal["mark_notifications_read"] = "mark_notifications_read"
    notification_ids: List[str]


AnyCommand = Annotated[
    Union[
        AddItem,
        EditItem,
        DeleteItem,
        ImportItems,
        RequestBorrow,
        ApproveBorrow,
        DenyBorrow,
        RequestReturn,
        CompleteReturn,
        RegisterUser,
        ApproveUser,
        DenyUser,
        EditUser,
        DeleteUser,
        AddSuggestion,
        ApproveItemSuggestion,
        ApproveFeatureSuggestion,
        DenySuggestion,
        AddComment,
        MarkNotificationsRead,
    ],
    Field(discriminator="type"),
]


def apply(state: State, c: Command) -> Transition:
    actor = c.actor_id
    if isinstance(c, AddItem):
        return inventory.add_item(state, c.name, c.category, c.total_quantity, actor_id=actor)
    if isinstance(c, EditItem):
        return inventory.edit_item(state, c.item_id, c.name, c.category, c.total_quantity, actor_id=actor)
    if isinstance(c, DeleteItem):
        return inventory.delete_item(state, c.item_id, actor_id=actor)
    if isinstance(c, ImportItems):
        return inventory.import_items(state, c.drafts, actor_id=actor)

    if isinstance(c, RequestBorrow):
        return borrowing.request_borrow(state, c.user_id, c.item_id, c.quantity, actor_id=actor)
    if isinstance(c, ApproveBorrow):
        return borrowing.approve_borrow(state, c.log_id, actor_id=actor)
    if isinstance(c, DenyBorrow):
        return borrowing.deny_borrow(state, c.log_id, c.reason, actor_id=actor)
    if isinstance(c, RequestReturn):
        return borrowing.request_return(state, c.log_id, actor_id=actor)
    if isinstance(c, CompleteReturn):
        return borrowing.complete_return(state, c.log_id, c.admin_notes, actor_id=actor)

    if isinstance(c, RegisterUser):
        return accounts.register_user(state, c.registration)
    if isinstance(c, ApproveUser):
        return accounts.approve_user(state, c.user_id, actor_id=actor)
    if isinstance(c, DenyUser):
        return accounts.deny_user(state, c.user_id, actor_id=actor)
    if isinstance(c, EditUser):
        return accounts.edit_user(state, c.user_id, c.changes, actor_id=actor)
    if isinstance(c, DeleteUser):
        return accounts.delete_user(state, c.user_id, actor_id=actor)

    if isinstance(c, AddSuggestion):
        return suggestions.add_suggestion(state, c.user_id, c.suggestion_type, c.title, c.description, actor_id=actor)
    if isinstance(c, ApproveItemSuggestion):
        return suggestions.approve_item_suggestion(state, c.suggestion_id, c.category, c.total_quantity, actor_id=actor)
    if isinstance(c, ApproveFeatureSuggestion):
        return suggestions.approve_feature_suggestion(state, c.suggestion_id, actor_id=actor)
    if isinstance(c, DenySuggestion):
        return suggestions.deny_suggestion(state, c.suggestion_id, c.reason, c.admin_id, actor_id=actor)
    if isinstance(c, AddComment):
        return suggestions.add_comment(state, c.suggestion_id, c.user_id, c.text, actor_id=actor)

    if isinstance(c, MarkNotificationsRead):
        return notifications.mark_notifications_read(state, c.notification_ids, actor_id=actor)

    raise TypeError(f"unknown command {type(c).__name__}")
