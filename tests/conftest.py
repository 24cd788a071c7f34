import pytest

from accounts import Registration, approve_user, register_user
from inventory import add_item
from seed import seed_state


def _make_member(state, username="juan", full_name=None, email=None, lrn=""):
    registration = Registration(
        username=username,
        full_name=full_name or f"{username.title()} Dela Cruz",
        email=email or f"{username}@school.ph",
        password="secret1",
        lrn=lrn,
    )
    t = register_user(state, registration)
    t = approve_user(t.state, t.result.id)
    return t.state, t.result


@pytest.fixture
def state():
    return seed_state()


@pytest.fixture
def admin(state):
    return state.users[0]


@pytest.fixture
def make_member():
    return _make_member


@pytest.fixture
def stocked(state, make_member):
    """Seed state plus an approved member and a 10-unit item."""
    state, member = make_member(state)
    t = add_item(state, "Bunsen Burner", "Chemistry", 10)
    return t.state, member, t.result
