"""Eligibility and voting window checks.

Nothing here reads a clock or touches the database: callers pass ``now`` and
the documents they already loaded, so every decision is a pure function of
its arguments.
"""
import datetime
from zoneinfo import ZoneInfo

from eboto.constants import ACTIVE
from eboto.errors import AlreadyVoted, NotFound, NotOngoing, Unauthorized


def as_utc(value: datetime.datetime) -> datetime.datetime:
    # pymongo returns naive datetimes that are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def is_active(doc) -> bool:
    return bool(doc) and doc.get("status", ACTIVE) == ACTIVE


def is_election_ongoing(election, now) -> bool:
    """True while ``now`` lies within [start_date, end_date]."""
    now = as_utc(now)
    return as_utc(election["start_date"]) <= now <= as_utc(election["end_date"])


def within_voting_hours(election, now, tz="UTC") -> bool:
    hours = election.get("voting_hours")
    if not hours:
        return True
    local = as_utc(now).astimezone(ZoneInfo(tz))
    minutes = local.hour * 60 + local.minute
    return hours["start"] * 60 <= minutes < hours["end"] * 60


def is_voting_open(election, now, enforce_voting_hours=True, tz="UTC") -> bool:
    if not is_election_ongoing(election, now):
        return False
    if enforce_voting_hours and not within_voting_hours(election, now, tz):
        return False
    return True


def check_can_vote(election, voter, now, has_voted=False, enforce_voting_hours=True, tz="UTC"):
    """Raise the first reason ``voter`` may not vote in ``election`` at ``now``.

    The order matters: a closed window is reported before anything about the
    voter or the ballot, so an out-of-window submission is always NotOngoing.
    """
    if not is_active(election):
        raise NotFound("election not found")
    if not is_voting_open(election, now, enforce_voting_hours, tz):
        raise NotOngoing("election is not ongoing")
    if not is_active(voter) or voter.get("election_id") != election["_id"]:
        raise Unauthorized("you are not a voter of this election")
    if has_voted:
        raise AlreadyVoted("you have already voted in this election")


def can_view_election(election, is_commissioner=False, is_voter=False) -> bool:
    publicity = election.get("publicity", "PRIVATE")
    if is_commissioner:
        return True
    if publicity == "PUBLIC":
        return True
    if publicity == "VOTER":
        return is_voter
    return False
