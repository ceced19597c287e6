import datetime
from types import SimpleNamespace

import mongomock
import pytest

from eboto import admin
from eboto.app import create_app
from eboto.auth import create_session_jwt
from eboto.models import Store

UTC = datetime.timezone.utc
START = datetime.datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
END = datetime.datetime(2024, 1, 2, 0, 0, tzinfo=UTC)
DURING = datetime.datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
BEFORE = datetime.datetime(2023, 12, 31, 23, 59, tzinfo=UTC)
AFTER = datetime.datetime(2024, 1, 3, 0, 0, tzinfo=UTC)

COMMISSIONER = "user-commissioner"
VOTER_EMAILS = ("ana@example.com", "ben@example.com")

JWT_SECRET = "test-secret-key-long-enough-for-hs256-signing"


@pytest.fixture
def store():
    s = Store(mongomock.MongoClient(), "eboto_test")
    s.ensure_indexes()
    return s


def seed_election(store, slug="sc-2024", publicity="PUBLIC", voting_hours=None):
    """President (pick 1) with three candidates, Senator (pick up to 2) with two, and two voters."""
    election = admin.create_election(
        store, COMMISSIONER, name="Student Council 2024", slug=slug,
        start_date=START, end_date=END, publicity=publicity, voting_hours=voting_hours,
    )
    eid = election["_id"]
    ind = store.partylists.find_one({"election_id": eid, "acronym": "IND"})
    president = admin.create_position(store, eid, COMMISSIONER, "President")
    senator = admin.create_position(store, eid, COMMISSIONER, "Senator", min_count=0, max_count=2)

    candidates = {}
    for cslug, first, last, position in (
        ("alice", "Alice", "Reyes", president),
        ("bob", "Bob", "Cruz", president),
        ("carol", "Carol", "Santos", president),
        ("dan", "Dan", "Lim", senator),
        ("eve", "Eve", "Tan", senator),
    ):
        candidates[cslug] = admin.create_candidate(
            store, eid, COMMISSIONER, cslug, first, last, position["_id"], ind["_id"])

    voters = {email: admin.create_voter(store, eid, COMMISSIONER, email) for email in VOTER_EMAILS}
    return SimpleNamespace(
        doc=election,
        id=eid,
        president=president,
        senator=senator,
        candidates=candidates,
        voters=voters,
        independent=ind,
    )


@pytest.fixture
def election(store):
    return seed_election(store)


@pytest.fixture
def app(store):
    return create_app({"TESTING": True, "JWT_SECRET_KEY": JWT_SECRET}, store=store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_header(app):
    def make(user_id, email=None):
        with app.app_context():
            token = create_session_jwt(user_id, email)
        return {"Authorization": f"Bearer {token}"}
    return make


@pytest.fixture
def clock(monkeypatch):
    """Pin the time the API sees."""
    def set_now(when):
        monkeypatch.setattr("eboto.app.utcnow", lambda: when)
    set_now(DURING)
    return set_now
