import datetime
import logging
from contextlib import contextmanager

import certifi
from bson.errors import InvalidId
from bson.objectid import ObjectId
from flask import current_app
from pymongo import ASCENDING, MongoClient
from pymongo.errors import OperationFailure, PyMongoError

from eboto.constants import ACTIVE, DELETED
from eboto.errors import NotFound

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


def active(**criteria):
    # every read of a soft-deletable collection goes through this filter
    query = dict(criteria)
    query["status"] = ACTIVE
    return query


def to_object_id(value, what="record"):
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(f"{what} not found")


def to_json(value):
    """Turn a Mongo document (or list of them) into something jsonify accepts."""
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            out["id" if k == "_id" else k] = to_json(v)
        return out
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value.isoformat()
    return value


def is_write_conflict(exc) -> bool:
    """True for the error a transaction gets when a concurrent one touched the same key."""
    if not isinstance(exc, OperationFailure):
        return False
    return exc.code == 112 or exc.has_error_label("TransientTransactionError")


def get_store():
    return current_app.extensions["eboto_store"]


def connect(uri, tls=False) -> MongoClient:
    if tls:
        return MongoClient(uri, tls=True, tlsCAFile=certifi.where())
    return MongoClient(uri)


class AtomicWrite:
    """Inserts made on behalf of one all-or-nothing operation.

    With a session the surrounding transaction does the rollback. Without one,
    ``_id``s are assigned up front so a failed write can delete exactly the
    documents it may have created.
    """

    def __init__(self, session=None):
        self.session = session
        self._inserted = []

    def insert_one(self, collection, doc):
        doc.setdefault("_id", ObjectId())
        self._inserted.append((collection, [doc["_id"]]))
        collection.insert_one(doc, session=self.session)
        return doc["_id"]

    def insert_many(self, collection, docs):
        if not docs:
            return []
        for doc in docs:
            doc.setdefault("_id", ObjectId())
        ids = [doc["_id"] for doc in docs]
        self._inserted.append((collection, ids))
        collection.insert_many(docs, session=self.session)
        return ids

    def rollback(self):
        for collection, ids in reversed(self._inserted):
            try:
                collection.delete_many({"_id": {"$in": ids}})
            except PyMongoError:
                logger.exception("rollback of %d documents in %s failed", len(ids), collection.name)
        self._inserted = []


class Store:
    def __init__(self, client, db_name, use_transactions=False):
        self.client = client
        self.db = client[db_name]
        self.use_transactions = use_transactions

        # Collections
        self.elections = self.db.elections
        self.commissioners = self.db.commissioners
        self.positions = self.db.positions
        self.partylists = self.db.partylists
        self.candidates = self.db.candidates
        self.voters = self.db.voters
        self.ballots = self.db.ballots
        self.generated_results = self.db.generated_results
        self.audit_logs = self.db.audit_logs

    @classmethod
    def from_config(cls, config):
        # config is a mapping, e.g. flask.Config
        client = connect(config["MONGO_URI"], config["MONGO_TLS"])
        return cls(client, config["MONGO_DB"], use_transactions=config["MONGO_TRANSACTIONS"])

    def ensure_indexes(self):
        self.elections.create_index([("slug", ASCENDING)], unique=True)
        self.commissioners.create_index([("election_id", ASCENDING), ("user_id", ASCENDING)], unique=True)
        self.positions.create_index([("election_id", ASCENDING), ("order", ASCENDING)])
        self.partylists.create_index([("election_id", ASCENDING), ("acronym", ASCENDING)])
        self.candidates.create_index([("election_id", ASCENDING), ("slug", ASCENDING)])
        self.voters.create_index(
            [("election_id", ASCENDING), ("email", ASCENDING)],
            unique=True,
            partialFilterExpression={"status": ACTIVE},
        )
        # one ballot per voter email per election, enforced by the server
        self.ballots.create_index([("election_id", ASCENDING), ("voter_email", ASCENDING)], unique=True)
        self.generated_results.create_index([("election_id", ASCENDING)], unique=True)
        self.audit_logs.create_index([("timestamp", ASCENDING)])

    @contextmanager
    def atomic(self):
        if self.use_transactions:
            with self.client.start_session() as session:
                with session.start_transaction():
                    yield AtomicWrite(session)
            return
        write = AtomicWrite()
        try:
            yield write
        except Exception:
            write.rollback()
            raise

    def soft_delete(self, collection, query):
        now = utcnow()
        res = collection.update_one(
            active(**query),
            {"$set": {"status": DELETED, "deleted_at": now, "updated_at": now}},
        )
        return res.matched_count

    # Audit logger
    def log_audit(self, action: str, actor: str, details: dict = None):
        self.audit_logs.insert_one({
            "action": action,
            "actor": actor,
            "details": details or {},
            "timestamp": utcnow(),
        })
