from datetime import date, datetime, timezone

import pytest

from rounds_match.errors import InvalidConfiguration
from rounds_match.services.cycles import cycle_label, cycle_start, get_week_start_date, resolve_cycle_date

NOW = datetime(2024, 3, 6, 15, 30, tzinfo=timezone.utc)


def test_iso_week_string_resolves_to_monday():
    assert resolve_cycle_date("2024-W10", NOW) == date(2024, 3, 4)
    assert resolve_cycle_date("2024w10", NOW) == date(2024, 3, 4)


def test_iso_date_string_snaps_to_week_start():
    assert resolve_cycle_date("2024-03-09", NOW) == date(2024, 3, 4)
    assert resolve_cycle_date(date(2024, 3, 10), NOW) == date(2024, 3, 4)


def test_default_is_this_week_in_match_timezone():
    assert resolve_cycle_date(None, NOW) == date(2024, 3, 4)
    assert resolve_cycle_date("  ", NOW) == date(2024, 3, 4)
    # 02:00 UTC on Monday is still Sunday evening in New York
    monday_early = datetime(2024, 3, 11, 2, 0, tzinfo=timezone.utc)
    assert get_week_start_date(monday_early, "America/New_York") == date(2024, 3, 4)


@pytest.mark.parametrize("value", ["next week", "2024-W60", "2024-13-01", 20240304])
def test_invalid_cycle_dates_are_configuration_errors(value):
    with pytest.raises(InvalidConfiguration):
        resolve_cycle_date(value, NOW)


def test_cycle_label_and_start():
    assert cycle_label(date(2024, 3, 4)) == "2024-W10"
    assert cycle_label(date(2024, 12, 30)) == "2025-W01"
    start = cycle_start(date(2024, 3, 4), "America/New_York")
    assert start.astimezone(timezone.utc) == datetime(2024, 3, 4, 5, 0, tzinfo=timezone.utc)
