"""
Persistence for the aggregate State.

The whole State is stored as one snapshot, either as a JSON file or as a
single MongoDB document. Stored field names are camelCase.

Configuration (environment):
- DATABASE_URL / DATABASE_NAME: use MongoDB when both are set
- STATE_PATH: JSON file location otherwise (default olilab_state.json)
"""
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pydantic
from pymongo import MongoClient

from accounts import hash_password
from schemas import NotificationType, State
from seed import seed_state

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
STATE_PATH = os.getenv("STATE_PATH", "olilab_state.json")

STATE_COLLECTION = "state"
STATE_DOCUMENT_ID = "olilab"

_HASHED = re.compile(r"^[0-9a-f]{64}$")


def get_db():
    """The configured MongoDB database, or None when Mongo is not configured."""
    if not DATABASE_URL or not DATABASE_NAME:
        return None
    client = MongoClient(DATABASE_URL)
    return client[DATABASE_NAME]


def dump_state(state: State) -> Dict[str, Any]:
    return state.model_dump(mode="json", by_alias=True)


class StateStore(ABC):
    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """The raw stored snapshot, None when nothing has been stored yet."""

    @abstractmethod
    def save(self, state: State) -> None:
        ...


class MemoryStore(StateStore):
    def __init__(self, snapshot: Optional[Dict[str, Any]] = None) -> None:
        self.snapshot = snapshot
        self.saves = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return self.snapshot

    def save(self, state: State) -> None:
        self.snapshot = dump_state(state)
        self.saves += 1


class JsonFileStore(StateStore):
    def __init__(self, path: str = STATE_PATH) -> None:
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, encoding="utf-8") as fh:
            return json.load(fh)

    def save(self, state: State) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".olilab-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(dump_state(state), fh, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise


class MongoStateStore(StateStore):
    """Keeps the snapshot in one document of the `state` collection."""

    def __init__(self, db, document_id: str = STATE_DOCUMENT_ID) -> None:
        self.collection = db[STATE_COLLECTION]
        self.document_id = document_id

    def load(self) -> Optional[Dict[str, Any]]:
        doc = self.collection.find_one({"_id": self.document_id})
        if not doc:
            return None
        return doc.get("state")

    def save(self, state: State) -> None:
        self.collection.replace_one(
            {"_id": self.document_id},
            {
                "_id": self.document_id,
                "version": state.version,
                "state": dump_state(state),
                "updated_at": datetime.now(timezone.utc),
            },
            upsert=True,
        )


def default_store() -> StateStore:
    db = get_db()
    if db is not None:
        return MongoStateStore(db)
    return JsonFileStore(STATE_PATH)


# ---------------------------
# Loading & migration
# ---------------------------
def migrate(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring an older snapshot up to the current shape:
    - BORROW logs without a status are loans, i.e. APPROVED
    - users without a status were created before review existed: APPROVED
    - plain-text passwords are hashed
    - notifications of retired types are dropped
    - collections added later default to empty
    """
    data = dict(raw)
    for key in ("items", "users", "logs", "notifications", "suggestions", "comments"):
        data[key] = [dict(entry) for entry in (data.get(key) or [])]

    for log in data["logs"]:
        if log.get("action") == "BORROW" and not log.get("status"):
            log["status"] = "APPROVED"

    for user in data["users"]:
        if not user.get("status"):
            user["status"] = "APPROVED"
        if user.get("lrn") is None:
            user["lrn"] = ""
        password = user.get("password") or ""
        if password and not _HASHED.match(password):
            user["password"] = hash_password(password)
        if "isAdmin" in user:
            user["role"] = "Admin" if user["isAdmin"] else "Member"

    known = {t.value for t in NotificationType}
    data["notifications"] = [n for n in data["notifications"] if n.get("type") in known]
    return data


def load_state(store: StateStore) -> State:
    """Load and migrate the stored snapshot; bootstrap the seed on missing or corrupt data."""
    try:
        raw = store.load()
    except (OSError, ValueError):
        logger.exception("could not read stored state, starting from seed data")
        raw = None

    if isinstance(raw, dict) and raw.get("users") and raw.get("items") is not None:
        try:
            return State.model_validate(migrate(raw))
        except pydantic.ValidationError:
            logger.exception("stored state is invalid, starting from seed data")
    elif raw is not None:
        logger.warning("stored state is incomplete, starting from seed data")

    state = seed_state()
    store.save(state)
    return state
