import datetime

import pytest
from bson.objectid import ObjectId

from eboto.errors import AlreadyVoted, NotFound, NotOngoing, Unauthorized
from eboto.guard import (
    as_utc, can_view_election, check_can_vote, is_election_ongoing, is_voting_open, within_voting_hours,
)

from conftest import AFTER, BEFORE, DURING, END, START, UTC


def make_election(**overrides):
    election = {
        "_id": ObjectId(),
        "start_date": START,
        "end_date": END,
        "voting_hours": None,
        "publicity": "PRIVATE",
        "status": "ACTIVE",
    }
    election.update(overrides)
    return election


def make_voter(election, **overrides):
    voter = {"_id": ObjectId(), "election_id": election["_id"], "email": "ana@example.com", "status": "ACTIVE"}
    voter.update(overrides)
    return voter


def test_naive_datetimes_are_read_as_utc():
    naive = datetime.datetime(2024, 1, 1, 12, 0)
    assert as_utc(naive) == DURING


def test_window_is_inclusive_at_both_ends():
    election = make_election()
    assert is_election_ongoing(election, START)
    assert is_election_ongoing(election, END)
    assert is_election_ongoing(election, DURING)
    assert not is_election_ongoing(election, BEFORE)
    assert not is_election_ongoing(election, END + datetime.timedelta(seconds=1))


def test_stored_naive_dates_compare_with_aware_now():
    election = make_election(start_date=START.replace(tzinfo=None), end_date=END.replace(tzinfo=None))
    assert is_election_ongoing(election, DURING)


def test_voting_hours_are_half_open():
    election = make_election(voting_hours={"start": 8, "end": 17})
    day = datetime.datetime(2024, 1, 1, tzinfo=UTC)
    assert not within_voting_hours(election, day.replace(hour=7, minute=59))
    assert within_voting_hours(election, day.replace(hour=8))
    assert within_voting_hours(election, day.replace(hour=16, minute=59))
    assert not within_voting_hours(election, day.replace(hour=17))


def test_voting_hours_follow_the_configured_timezone():
    election = make_election(voting_hours={"start": 8, "end": 17})
    # 00:30 UTC is 08:30 in Manila
    early = datetime.datetime(2024, 1, 1, 0, 30, tzinfo=UTC)
    assert within_voting_hours(election, early, tz="Asia/Manila")
    assert not within_voting_hours(election, early, tz="UTC")


def test_no_voting_hours_means_all_day():
    election = make_election()
    assert within_voting_hours(election, datetime.datetime(2024, 1, 1, 3, 0, tzinfo=UTC))


def test_voting_hours_can_be_switched_off():
    election = make_election(voting_hours={"start": 8, "end": 17})
    night = datetime.datetime(2024, 1, 1, 20, 0, tzinfo=UTC)
    assert not is_voting_open(election, night)
    assert is_voting_open(election, night, enforce_voting_hours=False)
    assert not is_voting_open(election, AFTER, enforce_voting_hours=False)


def test_eligible_voter_passes():
    election = make_election()
    check_can_vote(election, make_voter(election), DURING)


def test_missing_or_deleted_election_is_not_found():
    with pytest.raises(NotFound):
        check_can_vote(None, None, DURING)
    election = make_election(status="DELETED")
    with pytest.raises(NotFound):
        check_can_vote(election, make_voter(election), DURING)


def test_window_is_checked_before_the_voter():
    election = make_election()
    # not a voter at all, but the closed window is what gets reported
    with pytest.raises(NotOngoing):
        check_can_vote(election, None, AFTER)
    with pytest.raises(NotOngoing):
        check_can_vote(election, make_voter(election), BEFORE, has_voted=True)


def test_outside_voting_hours_is_not_ongoing():
    election = make_election(voting_hours={"start": 8, "end": 17})
    with pytest.raises(NotOngoing):
        check_can_vote(election, make_voter(election), datetime.datetime(2024, 1, 1, 18, 0, tzinfo=UTC))


def test_unregistered_or_removed_voter_is_unauthorized():
    election = make_election()
    with pytest.raises(Unauthorized) as exc:
        check_can_vote(election, None, DURING)
    assert exc.value.code == "unauthorized"
    with pytest.raises(Unauthorized):
        check_can_vote(election, make_voter(election, status="DELETED"), DURING)
    with pytest.raises(Unauthorized):
        check_can_vote(election, make_voter(election, election_id=ObjectId()), DURING)


def test_second_vote_is_already_voted():
    election = make_election()
    with pytest.raises(AlreadyVoted) as exc:
        check_can_vote(election, make_voter(election), DURING, has_voted=True)
    assert exc.value.status_code == 409
    # still an authorization failure to anyone catching the broader type
    assert isinstance(exc.value, Unauthorized)


@pytest.mark.parametrize("publicity, commissioner, voter, expected", [
    ("PUBLIC", False, False, True),
    ("VOTER", False, False, False),
    ("VOTER", False, True, True),
    ("PRIVATE", False, True, False),
    ("PRIVATE", True, False, True),
])
def test_publicity(publicity, commissioner, voter, expected):
    election = make_election(publicity=publicity)
    assert can_view_election(election, is_commissioner=commissioner, is_voter=voter) is expected
