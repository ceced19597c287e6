"""Vote counting and what the results may reveal.

While an election is ongoing candidates are shown as "Candidate 1".."Candidate N"
in rank order with their names blanked, so a live tally can't be read as a
frontrunner list. Once the window has closed the real names come back.
"""
import logging
from collections import Counter

from pymongo.errors import DuplicateKeyError

from eboto.constants import ACTIVE
from eboto.errors import Conflict, NotFound
from eboto.guard import as_utc, is_election_ongoing
from eboto.models import active, to_json, to_object_id, utcnow

logger = logging.getLogger(__name__)


def count_votes(store, election_id):
    """Return (votes per candidate, abstentions per position)."""
    per_candidate = Counter()
    abstentions = Counter()
    for ballot in store.ballots.find({"election_id": election_id}, {"votes": 1}):
        for line in ballot.get("votes", []):
            if line.get("candidate_id") is not None:
                per_candidate[line["candidate_id"]] += 1
            else:
                abstentions[line.get("position_id")] += 1
    return per_candidate, abstentions


def rank_candidates(candidates, counts):
    # sorted() is stable: equal counts keep their input order
    return sorted(candidates, key=lambda c: counts.get(c["_id"], 0), reverse=True)


def full_name(candidate):
    parts = (candidate.get("first_name"), candidate.get("middle_name"), candidate.get("last_name"))
    return " ".join(p for p in parts if p)


def disclose(candidate, rank, vote_count, acronym, masked):
    if masked:
        return {
            "id": candidate["_id"],
            "display_name": f"Candidate {rank}",
            "first_name": "",
            "middle_name": "",
            "last_name": "",
            "partylist_acronym": acronym,
            "vote_count": vote_count,
        }
    return {
        "id": candidate["_id"],
        "display_name": full_name(candidate),
        "first_name": candidate.get("first_name") or "",
        "middle_name": candidate.get("middle_name") or "",
        "last_name": candidate.get("last_name") or "",
        "partylist_acronym": acronym,
        "vote_count": vote_count,
    }


def tally_election(store, election, now):
    eid = election["_id"]
    masked = is_election_ongoing(election, now)

    positions = list(store.positions.find(active(election_id=eid)).sort("order", 1))
    # all candidates, deleted included, so their rows still count toward the position total
    all_candidates = list(store.candidates.find({"election_id": eid}).sort("_id", 1))
    acronyms = {p["_id"]: p.get("acronym") for p in store.partylists.find({"election_id": eid})}
    per_candidate, abstentions = count_votes(store, eid)

    position_of = {c["_id"]: c["position_id"] for c in all_candidates}
    totals = Counter()
    for candidate_id, n in per_candidate.items():
        totals[position_of.get(candidate_id)] += n

    out = []
    for position in positions:
        pid = position["_id"]
        listed = [c for c in all_candidates if c["position_id"] == pid and c.get("status") == ACTIVE]
        ranked = rank_candidates(listed, per_candidate)
        out.append({
            "id": pid,
            "name": position["name"],
            "order": position.get("order", 0),
            "min": position.get("min", 0),
            "max": position.get("max", 1),
            "total_votes": totals[pid] + abstentions[pid],
            "abstain_count": abstentions[pid],
            "candidates": [
                disclose(c, i + 1, per_candidate.get(c["_id"], 0), acronyms.get(c.get("partylist_id")), masked)
                for i, c in enumerate(ranked)
            ],
        })

    return {
        "election": {
            "id": eid,
            "slug": election["slug"],
            "name": election["name"],
            "start_date": election["start_date"],
            "end_date": election["end_date"],
        },
        "is_ongoing": masked,
        "positions": out,
    }


def get_results(store, election_slug, now):
    election = store.elections.find_one(active(slug=election_slug))
    if election is None:
        raise NotFound("election not found")
    return to_json(tally_election(store, election, now))


def generate_final_results(store, election_id, now, actor):
    """Freeze the results of an election that has ended. Written exactly once."""
    election = store.elections.find_one(active(_id=to_object_id(election_id, "election")))
    if election is None:
        raise NotFound("election not found")
    if as_utc(now) <= as_utc(election["end_date"]):
        raise Conflict("results can only be generated after the election has ended")

    snapshot = to_json(tally_election(store, election, now))
    doc = {"election_id": election["_id"], "result": snapshot, "created_at": utcnow()}
    try:
        store.generated_results.insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("final results were already generated for this election")

    logger.info("final results generated for election %s", election["_id"])
    store.log_audit("results_generated", actor, {"election_id": str(election["_id"])})
    return snapshot


def get_final_results(store, election_slug):
    election = store.elections.find_one(active(slug=election_slug))
    if election is None:
        raise NotFound("election not found")
    doc = store.generated_results.find_one({"election_id": election["_id"]})
    if doc is None:
        raise NotFound("final results have not been generated yet")
    return doc["result"]
