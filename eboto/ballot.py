"""Ballot recording.

A ballot is every selection one voter makes across the positions of an
election. It is stored as one document in ``ballots``, unique per election and
voter email, carrying one line per selection under ``votes``. MongoDB writes a
single document atomically, so either all of it lands or none of it does.
Ballots are never updated or deleted.
"""
import logging
from typing import NamedTuple, Tuple, Union

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo.errors import DuplicateKeyError

from eboto.constants import ABSTAIN_TOKEN
from eboto.errors import AlreadyVoted, EbotoError, InvalidBallot, NotFound
from eboto.guard import check_can_vote
from eboto.models import active, to_object_id

logger = logging.getLogger(__name__)


class CandidateChoice(NamedTuple):
    candidate_id: ObjectId


class Abstain(NamedTuple):
    """An explicit "no selection" for a position."""


ABSTAIN = Abstain()

Selection = Union[CandidateChoice, Abstain]


class PositionBallot(NamedTuple):
    position_id: ObjectId
    selections: Tuple[Selection, ...]


def _parse_id(value, what):
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidBallot(f"invalid {what} id: {value!r}")


def _parse_selection(value) -> Selection:
    if isinstance(value, (CandidateChoice, Abstain)):
        return value
    # the wire token is only ever looked at here
    if value == ABSTAIN_TOKEN:
        return ABSTAIN
    return CandidateChoice(_parse_id(value, "candidate"))


def parse_ballot(payload):
    """Turn ``[{"position_id": ..., "votes": [candidate_id | "abstain", ...]}]`` into PositionBallots."""
    if not isinstance(payload, list) or not payload:
        raise InvalidBallot("a ballot must list at least one position")
    ballot = []
    for entry in payload:
        if isinstance(entry, PositionBallot):
            ballot.append(entry)
            continue
        if not isinstance(entry, dict):
            raise InvalidBallot("each ballot entry must be an object")
        raw = entry.get("votes", entry.get("selections"))
        if not isinstance(raw, list) or not raw:
            raise InvalidBallot("each position needs at least one selection")
        position_id = _parse_id(entry.get("position_id"), "position")
        ballot.append(PositionBallot(position_id, tuple(_parse_selection(s) for s in raw)))
    return ballot


def validate_ballot(store, election, ballot):
    positions = {p["_id"]: p for p in store.positions.find(active(election_id=election["_id"]))}
    candidates = {c["_id"]: c for c in store.candidates.find(active(election_id=election["_id"]))}
    seen = set()
    for entry in ballot:
        position = positions.get(entry.position_id)
        if position is None:
            raise NotFound("position not found", {"position_id": str(entry.position_id)})
        if entry.position_id in seen:
            raise InvalidBallot(f"{position['name']} appears more than once on the ballot")
        seen.add(entry.position_id)

        if any(isinstance(s, Abstain) for s in entry.selections):
            if len(entry.selections) != 1:
                raise InvalidBallot(f"an abstention for {position['name']} can't be combined with candidates")
            continue

        chosen = [s.candidate_id for s in entry.selections]
        if len(set(chosen)) != len(chosen):
            raise InvalidBallot(f"a candidate for {position['name']} was selected more than once")
        for candidate_id in chosen:
            candidate = candidates.get(candidate_id)
            if candidate is None or candidate["position_id"] != entry.position_id:
                raise NotFound("candidate not found", {"candidate_id": str(candidate_id)})
        if len(chosen) > position.get("max", 1):
            raise InvalidBallot(f"at most {position.get('max', 1)} selection(s) allowed for {position['name']}")
        if len(chosen) < position.get("min", 0):
            raise InvalidBallot(f"at least {position.get('min', 0)} selection(s) required for {position['name']}")


def flatten_ballot(ballot):
    """One line per selection: ``{"candidate_id": id}`` or ``{"position_id": id, "candidate_id": None}``."""
    lines = []
    for entry in ballot:
        for selection in entry.selections:
            if isinstance(selection, Abstain):
                lines.append({"position_id": entry.position_id, "candidate_id": None})
            else:
                lines.append({"candidate_id": selection.candidate_id})
    return lines


def has_voted(store, election_id, voter_email) -> bool:
    # keyed on the email, so removing and re-adding a voter doesn't reset it
    email = (voter_email or "").strip().lower()
    return store.ballots.find_one({"election_id": election_id, "voter_email": email}) is not None


def submit_ballot(store, election_id, voter_email, selections, now, enforce_voting_hours=True, tz="UTC"):
    """Record one voter's full ballot.

    Raises NotFound, NotOngoing, Unauthorized or AlreadyVoted (in that order of
    checking) and InvalidBallot for a malformed ballot; on any failure nothing
    is written.
    """
    voter_email = (voter_email or "").strip().lower()
    try:
        return _record_ballot(store, election_id, voter_email, selections, now, enforce_voting_hours, tz)
    except EbotoError as e:
        store.log_audit("vote_rejected", voter_email or "unknown", {"election_id": str(election_id), "reason": e.code})
        raise


def _record_ballot(store, election_id, voter_email, selections, now, enforce_voting_hours, tz):
    election = store.elections.find_one(active(_id=to_object_id(election_id, "election")))
    voter = None
    voted = False
    if election is not None and voter_email:
        voter = store.voters.find_one(active(election_id=election["_id"], email=voter_email))
        voted = has_voted(store, election["_id"], voter_email)

    check_can_vote(election, voter, now, has_voted=voted, enforce_voting_hours=enforce_voting_hours, tz=tz)

    ballot = parse_ballot(selections)
    validate_ballot(store, election, ballot)

    lines = flatten_ballot(ballot)
    doc = {
        "_id": ObjectId(),
        "election_id": election["_id"],
        "voter_id": voter["_id"],
        "voter_email": voter_email,
        "cast_at": now,
        "votes": lines,
    }
    # a single document, so the receipt and its lines commit together;
    # the unique index settles a race between the check above and this insert
    try:
        store.ballots.insert_one(doc)
    except DuplicateKeyError:
        raise AlreadyVoted("you have already voted in this election")

    logger.info("ballot %s recorded for election %s (%d lines)", doc["_id"], election["_id"], len(lines))
    store.log_audit("vote_cast", voter_email, {
        "election_id": str(election["_id"]),
        "ballot_id": str(doc["_id"]),
        "vote_count": len(lines),
    })
    return {"ballot_id": doc["_id"], "vote_count": len(lines)}
