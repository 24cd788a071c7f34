"""
User lifecycle: self-registration, admin review, profile edits and deletion.

    PENDING --approve--> APPROVED
    PENDING --deny-----> DENIED
"""
import hashlib
import logging
import os
import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from errors import ConflictError, DuplicateError, InvalidStateError, NotFoundError, ValidationError
from notifications import (
    account_approved_email,
    account_denied_email,
    new_user_pending_email,
    notification,
    profile_updated_email,
)
from schemas import (
    GRADE_SECTIONS,
    GradeLevel,
    NotificationType,
    Role,
    State,
    User,
    UserStatus,
    evolve,
    new_id,
    utcnow,
)
from transitions import Transition, commit, require_admin

logger = logging.getLogger(__name__)

SECRET = os.getenv("SECRET_KEY", "dev-secret")

LRN_PATTERN = re.compile(r"^\d{12}$")


def hash_password(pw: str) -> str:
    return hashlib.sha256((pw + SECRET).encode()).hexdigest()


def verify_password(pw: str, hashed: str) -> bool:
    return hash_password(pw) == hashed


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("username", "full_name", "email", "lrn", mode="before", check_fields=False)
    @classmethod
    def _strip(cls, v):
        # identity fields are compared and stored trimmed
        return v.strip() if isinstance(v, str) else v

    @field_validator("lrn", check_fields=False)
    @classmethod
    def _lrn_digits(cls, v):
        if v and not LRN_PATTERN.match(v):
            raise ValueError("LRN must be exactly 12 digits.")
        return v

    @model_validator(mode="after")
    def _section_matches_grade(self):
        grade = getattr(self, "grade_level", None)
        section = getattr(self, "section", None)
        if section and grade and section not in GRADE_SECTIONS[grade]:
            raise ValueError(f"Section {section} is not offered in {grade.value}.")
        return self


class Registration(_Payload):
    username: str = Field(..., min_length=1)
    full_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6, description="Plain text, hashed before storage")
    lrn: str = ""
    grade_level: Optional[GradeLevel] = None
    section: Optional[str] = None


class UserChanges(_Payload):
    """Partial profile update; None leaves a field untouched."""
    username: Optional[str] = Field(None, min_length=1)
    full_name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=3)
    password: Optional[str] = Field(None, min_length=6)
    lrn: Optional[str] = None
    grade_level: Optional[GradeLevel] = None
    section: Optional[str] = None
    is_admin: Optional[bool] = None


def _check_unique(state: State, username: str, full_name: str, email: str, lrn: str, exclude_id: Optional[str] = None) -> None:
    others = [u for u in state.users if u.id != exclude_id]
    if any(u.username.lower() == username.lower() for u in others):
        raise DuplicateError("username", "This username is already taken.")
    if any(u.full_name.lower() == full_name.lower() for u in others):
        raise DuplicateError("fullName", "A user with this full name already exists.")
    if any(u.email.lower() == email.lower() for u in others):
        raise DuplicateError("email", "This email is already registered.")
    if lrn and any(u.lrn == lrn for u in others):
        raise DuplicateError("lrn", "This LRN is already registered.")


def _get_user(state: State, user_id: str) -> User:
    user = state.find_user(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def _replace_user(state: State, updated: User):
    return tuple(updated if u.id == updated.id else u for u in state.users)


def register_user(state: State, registration: Registration, now: Optional[datetime] = None) -> Transition:
    r = registration
    _check_unique(state, r.username, r.full_name, r.email, r.lrn)
    user = User(
        id=new_id("user"),
        username=r.username,
        full_name=r.full_name,
        email=r.email,
        password=hash_password(r.password),
        lrn=r.lrn,
        grade_level=r.grade_level,
        section=r.section,
        role=Role.MEMBER,
        is_admin=False,
        status=UserStatus.PENDING,
    )
    notice = notification(
        f"New user registration pending approval: {user.full_name}",
        NotificationType.NEW_USER,
        now or utcnow(),
    )
    email = new_user_pending_email(user, [u for u in state.users if u.is_admin])
    new_state = commit(
        state,
        users=state.users + (user,),
        notifications=(notice,) + state.notifications,
    )
    return Transition(new_state, user, (email,) if email else ())


def _review(state: State, user_id: str, status: UserStatus, actor_id: Optional[str]) -> Transition:
    require_admin(state, actor_id)
    user = _get_user(state, user_id)
    if user.status != UserStatus.PENDING:
        raise InvalidStateError(f"{user.full_name} is already {user.status.value}.")
    reviewed = evolve(user, status=status)
    email = account_approved_email(reviewed) if status == UserStatus.APPROVED else account_denied_email(reviewed)
    return Transition(commit(state, users=_replace_user(state, reviewed)), reviewed, (email,))


def approve_user(state: State, user_id: str, actor_id: Optional[str] = None) -> Transition:
    return _review(state, user_id, UserStatus.APPROVED, actor_id)


def deny_user(state: State, user_id: str, actor_id: Optional[str] = None) -> Transition:
    return _review(state, user_id, UserStatus.DENIED, actor_id)


def has_outstanding_loans(state: State, user_id: str) -> bool:
    return any(l.user_id == user_id and l.is_outstanding for l in state.logs)


def is_last_admin(state: State, user: User) -> bool:
    return user.is_approved_admin and len(state.approved_admins()) <= 1


def edit_user(state: State, user_id: str, changes: UserChanges, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    user = _get_user(state, user_id)
    update = changes.model_dump(exclude_none=True)
    if "password" in update:
        update["password"] = hash_password(update["password"])

    if "is_admin" in update:
        if not update["is_admin"] and is_last_admin(state, user):
            raise ConflictError("Cannot remove admin rights from the last approved admin.")
        update["role"] = Role.ADMIN if update["is_admin"] else Role.MEMBER
        if update["is_admin"]:
            update.update(grade_level=None, section=None, lrn="")

    merged = user.model_copy(update=update)
    _check_unique(state, merged.username, merged.full_name, merged.email, merged.lrn, exclude_id=user_id)
    if merged.section and merged.grade_level and merged.section not in GRADE_SECTIONS[merged.grade_level]:
        raise ValidationError(f"Section {merged.section} is not offered in {merged.grade_level.value}.")
    updated = evolve(user, **update)

    email = profile_updated_email(updated, changed_by_admin=actor_id is not None and actor_id != user_id)
    return Transition(commit(state, users=_replace_user(state, updated)), updated, (email,))


def delete_user(state: State, user_id: str, actor_id: Optional[str] = None) -> Transition:
    require_admin(state, actor_id)
    user = _get_user(state, user_id)
    if has_outstanding_loans(state, user_id):
        raise ConflictError(f"Cannot delete {user.full_name}: they still have items on loan.")
    if is_last_admin(state, user):
        raise ConflictError("Cannot delete the last approved admin.")
    users = tuple(u for u in state.users if u.id != user_id)
    return Transition(commit(state, users=users), user)


def find_by_identifier(state: State, identifier: str) -> Optional[User]:
    ident = identifier.lower().strip()
    return next(
        (
            u
            for u in state.users
            if u.email.lower() == ident or u.username.lower() == ident or (u.lrn and u.lrn == identifier.strip())
        ),
        None,
    )


def authenticate(state: State, identifier: str, password: str) -> Optional[User]:
    """The matching approved user, None on bad credentials; raises for accounts under review."""
    user = find_by_identifier(state, identifier)
    if user is None or not verify_password(password, user.password):
        return None
    if user.status == UserStatus.PENDING:
        raise InvalidStateError("Your account is pending approval by an administrator.")
    if user.status == UserStatus.DENIED:
        raise InvalidStateError("Your account registration has been denied.")
    return user
