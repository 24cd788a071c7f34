from notifications import mark_notifications_read, unread_notifications
from reports import NOT_CONFIGURED, generate_report, inventory_stats, is_low_stock, recent_activity
from schemas import Item


def test_low_stock_threshold():
    assert is_low_stock(Item(id="a", name="A", category="Physics", total_quantity=10, available_quantity=1))
    assert not is_low_stock(Item(id="b", name="B", category="Physics", total_quantity=10, available_quantity=2))
    assert not is_low_stock(Item(id="c", name="C", category="Physics", total_quantity=0, available_quantity=0))


def test_stats_on_seed(state):
    assert inventory_stats(state) == {
        "total_units": 50,
        "borrowed_units": 4,
        "low_stock_items": 0,
        "approved_users": 1,
        "pending_users": 0,
        "pending_requests": 0,
        "return_requests": 1,
    }


def test_recent_activity_is_newest_first(state):
    assert [l.id for l in recent_activity(state)] == ["log_1622548800002", "log_1622548800003"]
    assert len(recent_activity(state, limit=1)) == 1


def test_missing_generator_placeholder(state):
    assert generate_report(state) == NOT_CONFIGURED


def test_mark_read_is_the_only_notification_change(stocked):
    from borrowing import request_borrow

    state, member, item = stocked
    state = request_borrow(state, member.id, item.id, 1).state
    unread = unread_notifications(state)
    assert len(unread) == 2  # registration + borrow request

    t = mark_notifications_read(state, [unread[0].id, "notif_missing"])
    assert [n.id for n in t.result] == [unread[0].id]
    assert len(unread_notifications(t.state)) == 1
    assert [n.message for n in t.state.notifications] == [n.message for n in state.notifications]

    again = mark_notifications_read(t.state, [unread[0].id])
    assert again.result == []
