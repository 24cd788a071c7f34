import hashlib
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel

import commands as cmd
from accounts import SECRET, Registration, UserChanges
from borrowing import loans_for_user, pending_requests
from database import default_store
from errors import LabError
from inventory import importable_drafts, search_items
from schemas import SuggestionType, User
from suggestions import comments_for
from tracker import InventoryTracker

logger = logging.getLogger(__name__)

app = FastAPI(title="OliLab Inventory API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

_tracker: Optional[InventoryTracker] = None


def get_tracker() -> InventoryTracker:
    global _tracker
    if _tracker is None:
        _tracker = InventoryTracker(default_store())
    return _tracker


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Utility functions

def make_token(user_id: str) -> str:
    # naive token: user_id|expiry|signature
    expiry = int((datetime.now(timezone.utc) + timedelta(hours=24)).timestamp())
    payload = f"{user_id}|{expiry}"
    signature = hashlib.sha256((payload + SECRET).encode()).hexdigest()
    return f"{payload}|{signature}"


def parse_token(token: str) -> Optional[str]:
    try:
        user_id, expiry, signature = token.split("|")
    except ValueError:
        return None
    payload = f"{user_id}|{expiry}"
    if hashlib.sha256((payload + SECRET).encode()).hexdigest() != signature:
        return None
    if not expiry.isdigit() or int(expiry) < int(datetime.now(timezone.utc).timestamp()):
        return None
    return user_id


def get_current_user(token: str = Depends(oauth2_scheme), tracker: InventoryTracker = Depends(get_tracker)) -> User:
    uid = parse_token(token)
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = tracker.state.find_user(uid)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(current: User = Depends(get_current_user)) -> User:
    if not current.is_admin:
        raise HTTPException(status_code=403, detail="Admins only")
    return current


def run(tracker: InventoryTracker, command: cmd.Command) -> Any:
    try:
        return tracker.execute(command)
    except LabError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


def public(user: User) -> Dict[str, Any]:
    return user.model_dump(mode="json", by_alias=True, exclude={"password"})


# Health
@app.get("/")
def root():
    return {"name": "OliLab Inventory API", "status": "ok"}


@app.get("/test")
def test_storage(tracker: InventoryTracker = Depends(get_tracker)):
    response = {"backend": "✅ Running", "storage": type(tracker.store).__name__}
    try:
        tracker.store.load()
        response["storage_status"] = "✅ Readable"
    except Exception as e:
        response["storage_status"] = f"❌ Error: {str(e)[:80]}"
    response["version"] = tracker.state.version
    return response


# Auth
@app.post("/auth/register")
def register(payload: Registration, tracker: InventoryTracker = Depends(get_tracker)):
    user = run(tracker, cmd.RegisterUser(registration=payload))
    return {"id": user.id, "status": user.status.value}


@app.post("/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), tracker: InventoryTracker = Depends(get_tracker)):
    try:
        user = tracker.login(form_data.username, form_data.password)
    except LabError as e:
        raise HTTPException(status_code=403, detail=e.message)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=make_token(user.id))


@app.get("/me")
def me(current: User = Depends(get_current_user)):
    return public(current)


# Items
class ItemPayload(BaseModel):
    name: str
    category: str
    total_quantity: int


@app.get("/items")
def list_items(q: str = "", category: Optional[str] = None, tracker: InventoryTracker = Depends(get_tracker)):
    return {"items": search_items(tracker.state, q, category)}


@app.post("/items")
def create_item(payload: ItemPayload, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return run(tracker, cmd.AddItem(actor_id=current.id, **payload.model_dump()))


@app.put("/items/{item_id}")
def update_item(item_id: str, payload: ItemPayload, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return run(tracker, cmd.EditItem(actor_id=current.id, item_id=item_id, **payload.model_dump()))


@app.delete("/items/{item_id}")
def delete_item(item_id: str, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    run(tracker, cmd.DeleteItem(actor_id=current.id, item_id=item_id))
    return {"deleted": True}


@app.post("/items/import")
def import_items(records: List[Dict[str, Any]], current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    drafts, skipped = importable_drafts(records)
    if drafts:
        run(tracker, cmd.ImportItems(actor_id=current.id, drafts=drafts))
    return {"imported": len(drafts), "skipped": skipped}


# Borrow / return
class BorrowPayload(BaseModel):
    item_id: str
    quantity: int = 1
    user_id: Optional[str] = None  # admins may file on behalf of a student


class ReasonPayload(BaseModel):
    reason: str


class ReturnPayload(BaseModel):
    admin_notes: str = ""


@app.get("/borrows")
def list_borrows(pending: bool = False, current: User = Depends(get_current_user), tracker: InventoryTracker = Depends(get_tracker)):
    state = tracker.state
    if not current.is_admin:
        return {"items": loans_for_user(state, current.id)}
    return {"items": pending_requests(state) if pending else list(state.logs)}


@app.post("/borrows")
def borrow_item(payload: BorrowPayload, current: User = Depends(get_current_user), tracker: InventoryTracker = Depends(get_tracker)):
    return run(
        tracker,
        cmd.RequestBorrow(
            actor_id=current.id,
            user_id=payload.user_id or current.id,
            item_id=payload.item_id,
            quantity=payload.quantity,
        ),
    )


@app.post("/borrows/{log_id}/approve")
def approve_borrow(log_id: str, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return run(tracker, cmd.ApproveBorrow(actor_id=current.id, log_id=log_id))


@app.post("/borrows/{log_id}/deny")
def deny_borrow(log_id: str, payload: ReasonPayload, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return run(tracker, cmd.DenyBorrow(actor_id=current.id, log_id=log_id, reason=payload.reason))


@app.post("/borrows/{log_id}/request-return")
def request_return(log_id: str, current: User = Depends(get_current_user), tracker: InventoryTracker = Depends(get_tracker)):
    return run(tracker, cmd.RequestReturn(actor_id=current.id, log_id=log_id))


@app.post("/borrows/{log_id}/return")
def complete_return(log_id: str, payload: ReturnPayload, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return run(tracker, cmd.CompleteReturn(actor_id=current.id, log_id=log_id, admin_notes=payload.admin_notes))


# Users
@app.get("/users")
def list_users(status: Optional[str] = None, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    users = [u for u in tracker.state.users if status is None or u.status.value == status.upper()]
    return {"items": [public(u) for u in users]}


@app.post("/users/{user_id}/approve")
def approve_user(user_id: str, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return public(run(tracker, cmd.ApproveUser(actor_id=current.id, user_id=user_id)))


@app.post("/users/{user_id}/deny")
def deny_user(user_id: str, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return public(run(tracker, cmd.DenyUser(actor_id=current.id, user_id=user_id)))


@app.put("/users/{user_id}")
def update_user(user_id: str, payload: UserChanges, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return public(run(tracker, cmd.EditUser(actor_id=current.id, user_id=user_id, changes=payload)))


@app.delete("/users/{user_id}")
def delete_user(user_id: str, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    run(tracker, cmd.DeleteUser(actor_id=current.id, user_id=user_id))
    return {"deleted": True}


# Suggestions & comments
class SuggestionPayload(BaseModel):
    type: SuggestionType
    title: str
    description: str = ""


class SuggestionApproval(BaseModel):
    category: Optional[str] = None
    total_quantity: Optional[int] = None


class CommentPayload(BaseModel):
    text: str


@app.get("/suggestions")
def list_suggestions(tracker: InventoryTracker = Depends(get_tracker), current: User = Depends(get_current_user)):
    return {"items": list(tracker.state.suggestions)}


@app.post("/suggestions")
def add_suggestion(payload: SuggestionPayload, current: User = Depends(get_current_user), tracker: InventoryTracker = Depends(get_tracker)):
    return run(
        tracker,
        cmd.AddSuggestion(
            actor_id=current.id,
            user_id=current.id,
            suggestion_type=payload.type,
            title=payload.title,
            description=payload.description,
        ),
    )


@app.post("/suggestions/{suggestion_id}/approve")
def approve_suggestion(
    suggestion_id: str,
    payload: SuggestionApproval,
    current: User = Depends(require_admin),
    tracker: InventoryTracker = Depends(get_tracker),
):
    suggestion = tracker.state.find_suggestion(suggestion_id)
    if suggestion is None:
        raise HTTPException(status_code=404, detail="Suggestion not found.")
    if suggestion.type == SuggestionType.ITEM:
        if not payload.category or payload.total_quantity is None:
            raise HTTPException(status_code=400, detail="Category and quantity are required to approve an item suggestion.")
        approved, item = run(
            tracker,
            cmd.ApproveItemSuggestion(
                actor_id=current.id,
                suggestion_id=suggestion_id,
                category=payload.category,
                total_quantity=payload.total_quantity,
            ),
        )
        return {"suggestion": approved, "item": item}
    approved = run(tracker, cmd.ApproveFeatureSuggestion(actor_id=current.id, suggestion_id=suggestion_id))
    return {"suggestion": approved}


@app.post("/suggestions/{suggestion_id}/deny")
def deny_suggestion(suggestion_id: str, payload: ReasonPayload, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    denied, comment = run(
        tracker,
        cmd.DenySuggestion(actor_id=current.id, suggestion_id=suggestion_id, reason=payload.reason, admin_id=current.id),
    )
    return {"suggestion": denied, "comment": comment}


@app.get("/suggestions/{suggestion_id}/comments")
def list_comments(suggestion_id: str, current: User = Depends(get_current_user), tracker: InventoryTracker = Depends(get_tracker)):
    return {"items": comments_for(tracker.state, suggestion_id)}


@app.post("/suggestions/{suggestion_id}/comments")
def add_comment(suggestion_id: str, payload: CommentPayload, current: User = Depends(get_current_user), tracker: InventoryTracker = Depends(get_tracker)):
    return run(
        tracker,
        cmd.AddComment(actor_id=current.id, suggestion_id=suggestion_id, user_id=current.id, text=payload.text),
    )


# Notifications for admins
class ReadPayload(BaseModel):
    ids: List[str]


@app.get("/notifications")
def list_notifications(unread: bool = False, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    items = [n for n in tracker.state.notifications if not (unread and n.read)]
    return {"items": items}


@app.post("/notifications/read")
def mark_read(payload: ReadPayload, current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    changed = run(tracker, cmd.MarkNotificationsRead(actor_id=current.id, notification_ids=payload.ids))
    return {"updated": len(changed)}


# Reports
@app.get("/reports/stats")
def report_stats(current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return tracker.stats()


@app.get("/reports/summary")
def report_summary(current: User = Depends(require_admin), tracker: InventoryTracker = Depends(get_tracker)):
    return {"report": tracker.report()}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="{asctime} [{levelname}] {name} - {message}",
        style="{",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
