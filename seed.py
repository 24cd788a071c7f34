from datetime import datetime, timedelta
from typing import Optional

from accounts import hash_password
from schemas import Item, LogAction, LogEntry, LogStatus, Role, State, User, UserStatus, new_id, utcnow

DEFAULT_ADMIN_PASSWORD = "password"


def seed_state(now: Optional[datetime] = None) -> State:
    """First-run aggregate: one approved admin, four lab items and two open loans."""
    now = now or utcnow()
    admin = User(
        id=new_id("admin"),
        username="admin",
        full_name="Admin User",
        email="admin@olilab.app",
        password=hash_password(DEFAULT_ADMIN_PASSWORD),
        lrn="",
        grade_level=None,
        section=None,
        role=Role.ADMIN,
        is_admin=True,
        status=UserStatus.APPROVED,
    )

    items = (
        Item(id="item_1622548800000", name="Beaker 250ml", category="Chemistry", total_quantity=20, available_quantity=18),
        Item(id="item_1622548800001", name="Test Tube Rack", category="Chemistry", total_quantity=15, available_quantity=15),
        Item(id="item_1622548800002", name="Microscope", category="Biology", total_quantity=5, available_quantity=3),
        Item(id="item_1622548800003", name="Sulfuric Acid (H2SO4)", category="Chemistry", total_quantity=10, available_quantity=10),
    )

    logs = (
        LogEntry(
            id="log_1622548800002",
            user_id=admin.id,
            item_id="item_1622548800002",
            quantity=2,
            timestamp=now - timedelta(days=1),
            action=LogAction.BORROW,
            status=LogStatus.APPROVED,
            return_requested=False,
        ),
        LogEntry(
            id="log_1622548800003",
            user_id=admin.id,
            item_id="item_1622548800000",
            quantity=2,
            timestamp=now - timedelta(days=2),
            action=LogAction.BORROW,
            status=LogStatus.APPROVED,
            return_requested=True,
        ),
    )

    return State(items=items, users=(admin,), logs=logs)
