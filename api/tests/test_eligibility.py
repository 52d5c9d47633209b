import logging
from datetime import datetime, timedelta, timezone

from rounds_match.entities import Gender, Member, SpecialtyPreference
from rounds_match.services.eligibility import eligibility_report, filter_eligible, in_cooldown

NOW = datetime(2024, 3, 4, 5, 0, tzinfo=timezone.utc)


def _member(member_id: str, **kwargs) -> Member:
    data = {
        "specialty": "Pediatrics",
        "city": "Chicago",
        "gender": Gender.MALE,
        "verified": True,
        "paid": True,
        "onboarding_complete": True,
    }
    data.update(kwargs)
    return Member(id=member_id, **data)


def test_cooldown_three_weeks_excluded_seven_weeks_included():
    recent = _member("recent", last_matched_at=NOW - timedelta(weeks=3))
    older = _member("older", last_matched_at=NOW - timedelta(weeks=7))

    eligible = filter_eligible([recent, older], NOW)

    assert [m.id for m in eligible] == ["older"]


def test_cooldown_boundary_is_inclusive_at_six_weeks():
    assert not in_cooldown(_member("a", last_matched_at=NOW - timedelta(weeks=6)), NOW)
    assert in_cooldown(_member("b", last_matched_at=NOW - timedelta(weeks=6) + timedelta(seconds=1)), NOW)
    assert not in_cooldown(_member("c"), NOW)


def test_cooldown_reads_naive_last_matched_as_utc():
    naive_recent = _member("a", last_matched_at=(NOW - timedelta(weeks=2)).replace(tzinfo=None))
    naive_old = _member("b", last_matched_at=(NOW - timedelta(weeks=6)).replace(tzinfo=None))

    assert in_cooldown(naive_recent, NOW)
    assert not in_cooldown(naive_old, NOW)
    assert [m.id for m in filter_eligible([naive_recent, naive_old], NOW)] == ["b"]


def test_cooldown_reads_naive_now_as_utc():
    naive_now = NOW.replace(tzinfo=None)

    assert in_cooldown(_member("a", last_matched_at=NOW - timedelta(weeks=2)), naive_now)
    assert not in_cooldown(_member("b", last_matched_at=NOW - timedelta(weeks=7)), naive_now)
    assert not in_cooldown(_member("c", last_matched_at=NOW - timedelta(weeks=6)), naive_now)


def test_required_flags_exclude_with_reasons():
    roster = [
        _member("ok"),
        _member("unverified", verified=False),
        _member("unpaid", paid=False),
        _member("onboarding", onboarding_complete=False),
    ]
    report = eligibility_report(roster, NOW)

    assert [m.id for m in report.eligible] == ["ok"]
    assert report.excluded == [
        ("unverified", "not_verified"),
        ("unpaid", "not_paid"),
        ("onboarding", "onboarding_incomplete"),
    ]
    assert report.counts["roster"] == 4
    assert report.counts["eligible"] == 1
    assert report.counts["cooldown"] == 0


def test_missing_attributes_are_advisory_and_logged(caplog):
    roster = [
        _member("no-specialty", specialty=None),
        _member("no-gender", gender=None),
        _member("bad-pref", specialty_preference=None),
        _member("fine"),
    ]
    with caplog.at_level(logging.WARNING):
        report = eligibility_report(roster, NOW)

    assert [m.id for m in report.eligible] == ["fine"]
    assert report.counts["missing_attributes"] == 3
    assert "[ELIGIBILITY]" in caplog.text
    assert "no-gender" in caplog.text


def test_duplicate_ids_keep_first_occurrence():
    first = _member("dup", city="Boston")
    second = _member("dup", city="Toronto")
    report = eligibility_report([first, second, _member("other")], NOW)

    assert [m.city for m in report.eligible if m.id == "dup"] == ["Boston"]
    assert ("dup", "duplicate_member") in report.excluded


def test_output_preserves_input_order():
    roster = [_member(mid) for mid in ["z", "a", "m", "b"]]
    assert [m.id for m in filter_eligible(roster, NOW)] == ["z", "a", "m", "b"]


def test_from_mapping_is_lenient():
    member = Member.from_mapping(
        {
            "id": " u1 ",
            "specialty": "Surgery",
            "city": "Boston",
            "gender": "Female",
            "interests": '["AI", "Travel", ""]',
            "availability_slots": None,
            "is_verified": 1,
            "is_paid": "true",
            "onboarding_completed": True,
            "specialty_preference": "no_preference",
            "last_matched_at": "2024-01-01T12:00:00",
        }
    )
    assert member.id == "u1"
    assert member.gender == Gender.FEMALE
    assert member.interests == frozenset({"AI", "Travel"})
    assert member.availability_slots == frozenset()
    assert member.specialty_preference == SpecialtyPreference.NO_PREFERENCE
    assert member.last_matched_at.tzinfo is not None
    assert member.missing_attributes() == []

    unknown = Member.from_mapping({"id": "u2", "specialty": "Surgery", "city": "Boston", "gender": "other", "specialty_preference": "whatever"})
    assert unknown.missing_attributes() == ["gender", "specialty_preference"]
