"""Commissioner services: elections, partylists, positions, candidates, voters.

Callers are expected to have checked commissioner standing already (see
``auth.commissioner_required``); these functions only enforce data rules.
"""
import logging

from pymongo.errors import DuplicateKeyError, OperationFailure

from eboto.ballot import has_voted
from eboto.constants import (
    ACTIVE, DEFAULT_PUBLICITY, INDEPENDENT_ACRONYM, INDEPENDENT_NAME, POSITION_TEMPLATES,
)
from eboto.errors import Conflict, InvalidRequest, NotFound
from eboto.guard import is_election_ongoing, is_voting_open
from eboto.models import active, is_write_conflict, to_object_id, utcnow
from eboto.validators import (
    is_taken_slug, normalize_email, normalize_slug, require_text, validate_date_range,
    validate_min_max, validate_publicity, validate_voting_hours,
)

logger = logging.getLogger(__name__)


# ---------------------------
# Elections
# ---------------------------
def get_election(store, election_id):
    election = store.elections.find_one(active(_id=to_object_id(election_id, "election")))
    if election is None:
        raise NotFound("election not found")
    return election


def get_election_by_slug(store, slug):
    election = store.elections.find_one(active(slug=(slug or "").strip().lower()))
    if election is None:
        raise NotFound("election not found")
    return election


def is_commissioner(store, election_id, user_id) -> bool:
    if not user_id:
        return False
    return store.commissioners.find_one({"election_id": election_id, "user_id": str(user_id)}) is not None


def _check_slug_free(store, slug):
    if is_taken_slug(slug) or store.elections.find_one({"slug": slug}):
        raise Conflict("election slug already exists")


def create_election(store, user_id, name, slug, start_date, end_date, template=0,
                    voting_hours=None, publicity=DEFAULT_PUBLICITY, description=None):
    """Create an election with its commissioner, the IND partylist and template positions, all or nothing."""
    name = require_text(name, "name")
    slug = normalize_slug(slug)
    start, end = validate_date_range(start_date, end_date)
    voting_hours = validate_voting_hours(voting_hours)
    publicity = validate_publicity(publicity)
    if template not in POSITION_TEMPLATES:
        raise InvalidRequest("unknown position template")
    _check_slug_free(store, slug)

    now = utcnow()
    try:
        with store.atomic() as write:
            election_id = write.insert_one(store.elections, {
                "slug": slug,
                "name": name,
                "description": description,
                "start_date": start,
                "end_date": end,
                "voting_hours": voting_hours,
                "publicity": publicity,
                "status": ACTIVE,
                "deleted_at": None,
                "created_at": now,
                "updated_at": now,
            })
            write.insert_one(store.commissioners, {
                "election_id": election_id,
                "user_id": str(user_id),
                "created_at": now,
            })
            write.insert_one(store.partylists, {
                "election_id": election_id,
                "name": INDEPENDENT_NAME,
                "acronym": INDEPENDENT_ACRONYM,
                "description": None,
                "logo_link": None,
                "status": ACTIVE,
                "created_at": now,
                "updated_at": now,
            })
            write.insert_many(store.positions, [
                {
                    "election_id": election_id,
                    "name": position,
                    "description": None,
                    "order": i,
                    "min": 0,
                    "max": 1,
                    "status": ACTIVE,
                    "created_at": now,
                    "updated_at": now,
                }
                for i, position in enumerate(POSITION_TEMPLATES[template]["positions"])
            ])
    except DuplicateKeyError:
        raise Conflict("election slug already exists")
    except OperationFailure as e:
        # inside a transaction a concurrent insert of the same slug surfaces as a write conflict
        if not is_write_conflict(e):
            raise
        raise Conflict("election slug already exists")

    logger.info("election %s created by %s", slug, user_id)
    store.log_audit("election_created", str(user_id), {"election_id": str(election_id), "slug": slug})
    return store.elections.find_one({"_id": election_id})


def edit_election(store, election_id, actor, **fields):
    election = get_election(store, election_id)
    updates = {}
    if "name" in fields:
        updates["name"] = require_text(fields["name"], "name")
    if "description" in fields:
        updates["description"] = fields["description"]
    if "slug" in fields:
        slug = normalize_slug(fields["slug"])
        if slug != election["slug"]:
            _check_slug_free(store, slug)
            updates["slug"] = slug
    if "start_date" in fields or "end_date" in fields:
        updates["start_date"], updates["end_date"] = validate_date_range(
            fields.get("start_date", election["start_date"]),
            fields.get("end_date", election["end_date"]),
        )
    if "voting_hours" in fields:
        updates["voting_hours"] = validate_voting_hours(fields["voting_hours"])
    if "publicity" in fields:
        updates["publicity"] = validate_publicity(fields["publicity"])
    if updates:
        updates["updated_at"] = utcnow()
        try:
            store.elections.update_one({"_id": election["_id"]}, {"$set": updates})
        except DuplicateKeyError:
            raise Conflict("election slug already exists")
        store.log_audit("election_edited", actor, {"election_id": str(election["_id"]), "fields": sorted(updates)})
    return store.elections.find_one({"_id": election["_id"]})


def delete_election(store, election_id, actor):
    election = get_election(store, election_id)
    # hidden first, so a failure never leaves a live election without commissioners
    store.soft_delete(store.elections, {"_id": election["_id"]})
    store.commissioners.delete_many({"election_id": election["_id"]})
    store.log_audit("election_deleted", actor, {"election_id": str(election["_id"])})


def list_my_elections(store, user_id):
    ids = [c["election_id"] for c in store.commissioners.find({"user_id": str(user_id)})]
    return list(store.elections.find(active(_id={"$in": ids})).sort("created_at", -1))


def get_election_page(store, slug, now, voter_email=None, enforce_voting_hours=True, tz="UTC"):
    """Everything the voting page shows: positions with their candidates, and where the caller stands."""
    election = get_election_by_slug(store, slug)
    eid = election["_id"]
    acronyms = {p["_id"]: p["acronym"] for p in store.partylists.find(active(election_id=eid))}
    candidates = list(store.candidates.find(active(election_id=eid)).sort("_id", 1))
    positions = []
    for position in store.positions.find(active(election_id=eid)).sort("order", 1):
        position["candidates"] = []
        for c in candidates:
            if c["position_id"] == position["_id"]:
                c["partylist_acronym"] = acronyms.get(c["partylist_id"])
                position["candidates"].append(c)
        positions.append(position)

    voter = None
    if voter_email:
        voter = store.voters.find_one(active(election_id=eid, email=voter_email.strip().lower()))
    return {
        "election": election,
        "positions": positions,
        "is_ongoing": is_election_ongoing(election, now),
        "is_voting_open": is_voting_open(election, now, enforce_voting_hours, tz),
        "is_voter": voter is not None,
        "has_voted": voter is not None and has_voted(store, eid, voter["email"]),
    }


# ---------------------------
# Partylists
# ---------------------------
def _get_child(store, collection, election, child_id, what):
    doc = collection.find_one(active(_id=to_object_id(child_id, what), election_id=election["_id"]))
    if doc is None:
        raise NotFound(f"{what} not found")
    return doc


def _check_acronym(store, election, acronym, exclude_id=None):
    if acronym.upper() == INDEPENDENT_ACRONYM:
        raise Conflict(f"{INDEPENDENT_ACRONYM} is a reserved acronym")
    query = active(election_id=election["_id"], acronym=acronym)
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if store.partylists.find_one(query):
        raise Conflict("acronym already exists")


def list_partylists(store, election_id, include_independent=False):
    election = get_election(store, election_id)
    query = active(election_id=election["_id"])
    if not include_independent:
        query["acronym"] = {"$ne": INDEPENDENT_ACRONYM}
    return list(store.partylists.find(query).sort("created_at", 1))


def create_partylist(store, election_id, actor, name, acronym, description=None, logo_link=None):
    election = get_election(store, election_id)
    name = require_text(name, "name")
    acronym = require_text(acronym, "acronym")
    _check_acronym(store, election, acronym)
    now = utcnow()
    doc = {
        "election_id": election["_id"],
        "name": name,
        "acronym": acronym,
        "description": description,
        "logo_link": logo_link,
        "status": ACTIVE,
        "created_at": now,
        "updated_at": now,
    }
    store.partylists.insert_one(doc)
    store.log_audit("partylist_created", actor, {"election_id": str(election["_id"]), "acronym": acronym})
    return doc


def edit_partylist(store, election_id, partylist_id, actor, **fields):
    election = get_election(store, election_id)
    partylist = _get_child(store, store.partylists, election, partylist_id, "partylist")
    if partylist["acronym"] == INDEPENDENT_ACRONYM:
        raise Conflict(f"the {INDEPENDENT_ACRONYM} partylist can't be edited")
    updates = {}
    if "name" in fields:
        updates["name"] = require_text(fields["name"], "name")
    if "acronym" in fields:
        acronym = require_text(fields["acronym"], "acronym")
        if acronym != partylist["acronym"]:
            _check_acronym(store, election, acronym, exclude_id=partylist["_id"])
        updates["acronym"] = acronym
    for f in ("description", "logo_link"):
        if f in fields:
            updates[f] = fields[f]
    if updates:
        updates["updated_at"] = utcnow()
        store.partylists.update_one({"_id": partylist["_id"]}, {"$set": updates})
        store.log_audit("partylist_edited", actor, {"partylist_id": str(partylist["_id"])})
    return store.partylists.find_one({"_id": partylist["_id"]})


def delete_partylist(store, election_id, partylist_id, actor):
    election = get_election(store, election_id)
    partylist = _get_child(store, store.partylists, election, partylist_id, "partylist")
    if partylist["acronym"] == INDEPENDENT_ACRONYM:
        raise Conflict(f"the {INDEPENDENT_ACRONYM} partylist can't be deleted")
    store.soft_delete(store.partylists, {"_id": partylist["_id"]})
    store.log_audit("partylist_deleted", actor, {"partylist_id": str(partylist["_id"])})


# ---------------------------
# Positions
# ---------------------------
def list_positions(store, election_id):
    election = get_election(store, election_id)
    return list(store.positions.find(active(election_id=election["_id"])).sort("order", 1))


def create_position(store, election_id, actor, name, min_count=0, max_count=1, description=None):
    election = get_election(store, election_id)
    name = require_text(name, "name")
    min_count, max_count = validate_min_max(min_count, max_count)
    now = utcnow()
    doc = {
        "election_id": election["_id"],
        "name": name,
        "description": description,
        # counts deleted positions too so order never repeats
        "order": store.positions.count_documents({"election_id": election["_id"]}),
        "min": min_count,
        "max": max_count,
        "status": ACTIVE,
        "created_at": now,
        "updated_at": now,
    }
    store.positions.insert_one(doc)
    store.log_audit("position_created", actor, {"election_id": str(election["_id"]), "name": name})
    return doc


def edit_position(store, election_id, position_id, actor, **fields):
    election = get_election(store, election_id)
    position = _get_child(store, store.positions, election, position_id, "position")
    updates = {}
    if "name" in fields:
        updates["name"] = require_text(fields["name"], "name")
    if "description" in fields:
        updates["description"] = fields["description"]
    if "min" in fields or "max" in fields:
        updates["min"], updates["max"] = validate_min_max(
            fields.get("min", position.get("min", 0)),
            fields.get("max", position.get("max", 1)),
        )
    if updates:
        updates["updated_at"] = utcnow()
        store.positions.update_one({"_id": position["_id"]}, {"$set": updates})
        store.log_audit("position_edited", actor, {"position_id": str(position["_id"])})
    return store.positions.find_one({"_id": position["_id"]})


def delete_position(store, election_id, position_id, actor):
    election = get_election(store, election_id)
    position = _get_child(store, store.positions, election, position_id, "position")
    store.soft_delete(store.positions, {"_id": position["_id"]})
    store.log_audit("position_deleted", actor, {"position_id": str(position["_id"])})


# ---------------------------
# Candidates
# ---------------------------
def _check_candidate_slug(store, election, slug, exclude_id=None):
    query = active(election_id=election["_id"], slug=slug)
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if store.candidates.find_one(query):
        raise Conflict("candidate slug already exists")


def list_candidates(store, election_id):
    election = get_election(store, election_id)
    return list(store.candidates.find(active(election_id=election["_id"])).sort("_id", 1))


def create_candidate(store, election_id, actor, slug, first_name, last_name, position_id, partylist_id,
                     middle_name=None):
    election = get_election(store, election_id)
    slug = normalize_slug(slug)
    first_name = require_text(first_name, "first_name")
    last_name = require_text(last_name, "last_name")
    position = _get_child(store, store.positions, election, position_id, "position")
    partylist = _get_child(store, store.partylists, election, partylist_id, "partylist")
    _check_candidate_slug(store, election, slug)
    now = utcnow()
    doc = {
        "election_id": election["_id"],
        "position_id": position["_id"],
        "partylist_id": partylist["_id"],
        "slug": slug,
        "first_name": first_name,
        "middle_name": middle_name or None,
        "last_name": last_name,
        "status": ACTIVE,
        "created_at": now,
        "updated_at": now,
    }
    store.candidates.insert_one(doc)
    store.log_audit("candidate_created", actor, {"election_id": str(election["_id"]), "slug": slug})
    return doc


def edit_candidate(store, election_id, candidate_id, actor, **fields):
    election = get_election(store, election_id)
    candidate = _get_child(store, store.candidates, election, candidate_id, "candidate")
    updates = {}
    if "slug" in fields:
        slug = normalize_slug(fields["slug"])
        if slug != candidate["slug"]:
            _check_candidate_slug(store, election, slug, exclude_id=candidate["_id"])
        updates["slug"] = slug
    for f in ("first_name", "last_name"):
        if f in fields:
            updates[f] = require_text(fields[f], f)
    if "middle_name" in fields:
        updates["middle_name"] = fields["middle_name"] or None
    if "position_id" in fields:
        updates["position_id"] = _get_child(store, store.positions, election, fields["position_id"], "position")["_id"]
    if "partylist_id" in fields:
        updates["partylist_id"] = _get_child(
            store, store.partylists, election, fields["partylist_id"], "partylist")["_id"]
    if updates:
        updates["updated_at"] = utcnow()
        store.candidates.update_one({"_id": candidate["_id"]}, {"$set": updates})
        store.log_audit("candidate_edited", actor, {"candidate_id": str(candidate["_id"])})
    return store.candidates.find_one({"_id": candidate["_id"]})


def delete_candidate(store, election_id, candidate_id, actor):
    election = get_election(store, election_id)
    candidate = _get_child(store, store.candidates, election, candidate_id, "candidate")
    store.soft_delete(store.candidates, {"_id": candidate["_id"]})
    store.log_audit("candidate_deleted", actor, {"candidate_id": str(candidate["_id"])})


# ---------------------------
# Voters
# ---------------------------
def _check_voter_email(store, election, email, exclude_id=None):
    query = active(election_id=election["_id"], email=email)
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if store.voters.find_one(query):
        raise Conflict("email is already a voter")


def list_voters(store, election_id):
    election = get_election(store, election_id)
    voted = set(b["voter_email"] for b in store.ballots.find({"election_id": election["_id"]}, {"voter_email": 1}))
    out = []
    for v in store.voters.find(active(election_id=election["_id"])).sort("created_at", 1):
        out.append({
            "_id": v["_id"],
            "email": v["email"],
            "created_at": v.get("created_at"),
            "has_voted": v["email"] in voted,
        })
    return out


def create_voter(store, election_id, actor, email):
    election = get_election(store, election_id)
    email = normalize_email(email)
    _check_voter_email(store, election, email)
    doc = {
        "election_id": election["_id"],
        "email": email,
        "status": ACTIVE,
        "created_at": utcnow(),
    }
    try:
        store.voters.insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("email is already a voter")
    store.log_audit("voter_added", actor, {"election_id": str(election["_id"]), "email": email})
    return doc


def edit_voter(store, election_id, voter_id, actor, email):
    election = get_election(store, election_id)
    voter = _get_child(store, store.voters, election, voter_id, "voter")
    email = normalize_email(email)
    if email != voter["email"]:
        if has_voted(store, election["_id"], voter["email"]):
            raise Conflict("a voter who already voted can't be changed")
        _check_voter_email(store, election, email, exclude_id=voter["_id"])
        try:
            store.voters.update_one({"_id": voter["_id"]}, {"$set": {"email": email}})
        except DuplicateKeyError:
            raise Conflict("email is already a voter")
        store.log_audit("voter_edited", actor, {"voter_id": str(voter["_id"])})
    return store.voters.find_one({"_id": voter["_id"]})


def delete_voter(store, election_id, voter_id, actor):
    election = get_election(store, election_id)
    voter = _get_child(store, store.voters, election, voter_id, "voter")
    if has_voted(store, election["_id"], voter["email"]):
        raise Conflict("a voter who already voted can't be removed")
    store.soft_delete(store.voters, {"_id": voter["_id"]})
    store.log_audit("voter_removed", actor, {"voter_id": str(voter["_id"])})
