"""
Entity Schemas for the OliLab Inventory Tracker

Each Pydantic model is one entity kind inside the aggregate State. Every entity
lives in a collection of State (Item -> state.items, LogEntry -> state.logs).
Models are frozen: transitions build new instances, they never mutate.

Stored and served field names are camelCase (totalQuantity, relatedLogId);
Python code uses snake_case.
"""
import random
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str = "id") -> str:
    """prefix_<epoch millis>_<7 random base36 chars>"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class Entity(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


def evolve(entity, **changes):
    """Copy of an entity with `changes` applied, re-running validation."""
    data = entity.model_dump()
    data.update(changes)
    return type(entity).model_validate(data)


# ---------------------------
# Inventory
# ---------------------------
class Item(Entity):
    id: str = Field(..., description="Opaque item id, e.g. item_1622548800000")
    name: str = Field(..., description="Display name, e.g. 'Beaker 250ml'")
    category: str = Field(..., description="One of ITEM_CATEGORIES, free text allowed")
    total_quantity: int = Field(..., ge=0, description="Units owned by the lab")
    available_quantity: int = Field(..., ge=0, description="Units on the shelf right now")

    @model_validator(mode="after")
    def _available_within_total(self):
        if self.available_quantity > self.total_quantity:
            raise ValueError(
                f"availableQuantity ({self.available_quantity}) exceeds totalQuantity ({self.total_quantity})"
            )
        return self

    @property
    def borrowed_quantity(self) -> int:
        return self.total_quantity - self.available_quantity


class ItemDraft(BaseModel):
    """An item as typed by an admin or read from an import file."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    total_quantity: int = Field(..., gt=0)

    @model_validator(mode="after")
    def _strip(self):
        if not self.name.strip() or not self.category.strip():
            raise ValueError("name and category must not be blank")
        return self


# ---------------------------
# Users
# ---------------------------
class UserStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class Role(str, Enum):
    MEMBER = "Member"
    ADMIN = "Admin"


class GradeLevel(str, Enum):
    GRADE_11 = "Grade 11"
    GRADE_12 = "Grade 12"


class User(Entity):
    id: str
    username: str = Field(..., description="Login name, unique case-insensitively")
    full_name: str = Field(..., description="Full name, unique case-insensitively")
    email: str = Field(..., description="Email address, unique case-insensitively")
    password: str = Field("", description="Salted sha256 hash of the password")
    lrn: str = Field("", description="Learner's Reference Number, empty for admins")
    grade_level: Optional[GradeLevel] = None
    section: Optional[str] = None
    role: Role = Role.MEMBER
    is_admin: bool = False
    status: UserStatus = UserStatus.PENDING

    @property
    def is_approved_admin(self) -> bool:
        return self.is_admin and self.status == UserStatus.APPROVED


# ---------------------------
# Borrow log
# ---------------------------
class LogAction(str, Enum):
    BORROW = "BORROW"
    RETURN = "RETURN"


class LogStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"  # item is on loan
    DENIED = "DENIED"
    RETURNED = "RETURNED"


class LogEntry(Entity):
    id: str
    user_id: str
    item_id: str
    quantity: int = Field(..., gt=0)
    timestamp: datetime
    action: LogAction
    status: Optional[LogStatus] = Field(None, description="Only set on BORROW logs")
    admin_notes: Optional[str] = Field(None, description="Denial reason or return notes")
    related_log_id: Optional[str] = Field(None, description="BORROW log closed by a RETURN log")
    return_requested: bool = False

    @model_validator(mode="after")
    def _return_links_borrow(self):
        if self.action == LogAction.RETURN and not self.related_log_id:
            raise ValueError("a RETURN log must reference the BORROW log it closes")
        return self

    @property
    def is_outstanding(self) -> bool:
        return self.action == LogAction.BORROW and self.status == LogStatus.APPROVED


# ---------------------------
# Notifications
# ---------------------------
class NotificationType(str, Enum):
    NEW_USER = "new_user"
    RETURN_REQUEST = "return_request"
    NEW_BORROW_REQUEST = "new_borrow_request"


class Notification(Entity):
    id: str
    message: str
    type: NotificationType
    read: bool = False
    timestamp: datetime
    related_log_id: Optional[str] = None


# ---------------------------
# Suggestions
# ---------------------------
class SuggestionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class SuggestionType(str, Enum):
    ITEM = "ITEM"
    FEATURE = "FEATURE"


class Suggestion(Entity):
    id: str
    user_id: str
    type: SuggestionType
    title: str = Field(..., min_length=1)
    description: str = ""
    category: Optional[str] = Field(None, description="Set by the admin when an ITEM suggestion is approved")
    status: SuggestionStatus = SuggestionStatus.PENDING
    timestamp: datetime


class Comment(Entity):
    id: str
    user_id: str
    suggestion_id: str
    text: str = Field(..., min_length=1)
    timestamp: datetime


# ---------------------------
# Aggregate
# ---------------------------
class State(Entity):
    """
    The whole tracker: the unit of persistence and of consistency.
    items/users keep insertion order; logs, notifications, suggestions and
    comments are newest-first.
    """
    version: int = Field(0, ge=0, description="Bumped by one on every committed transition")
    items: Tuple[Item, ...] = ()
    users: Tuple[User, ...] = ()
    logs: Tuple[LogEntry, ...] = ()
    notifications: Tuple[Notification, ...] = ()
    suggestions: Tuple[Suggestion, ...] = ()
    comments: Tuple[Comment, ...] = ()

    def find_item(self, item_id: str) -> Optional[Item]:
        return next((i for i in self.items if i.id == item_id), None)

    def find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def find_log(self, log_id: str) -> Optional[LogEntry]:
        return next((l for l in self.logs if l.id == log_id), None)

    def find_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        return next((s for s in self.suggestions if s.id == suggestion_id), None)

    def approved_admins(self) -> Tuple[User, ...]:
        return tuple(u for u in self.users if u.is_approved_admin)


ITEM_CATEGORIES = ["Physics", "Biology", "Chemistry", "Mathematics", "Others"]

GRADE_SECTIONS = {
    GradeLevel.GRADE_11: ["Altruism", "Benevolence", "Creativity"],
    GradeLevel.GRADE_12: ["Diplomacy", "Efficiency", "Fairness"],
}
