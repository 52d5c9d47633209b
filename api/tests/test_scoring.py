import math

import pytest

from rounds_match.entities import Gender, Member
from rounds_match.errors import ErrorKind, InvalidConfiguration
from rounds_match.services.scoring import CompatibilityScorer, overlap_ratio, validate_weights


def _member(member_id: str, **kwargs) -> Member:
    data = {
        "specialty": "Cardiology",
        "interests": frozenset(),
        "city": "Boston",
        "gender": Gender.FEMALE,
        "availability_slots": frozenset(),
        "verified": True,
        "paid": True,
        "onboarding_complete": True,
    }
    data.update(kwargs)
    return Member(id=member_id, **data)


def test_same_specialty_and_city_with_partial_interest_overlap():
    a = _member("a", interests=frozenset({"A", "B", "C"}), availability_slots=frozenset({"mon"}))
    b = _member("b", interests=frozenset({"A", "B"}), availability_slots=frozenset({"sat"}))

    result = CompatibilityScorer().score(a, b)

    assert result.value == pytest.approx(0.766667, abs=1e-6)
    assert result.components == {"specialty": 1.0, "interests": pytest.approx(2 / 3, abs=1e-6), "city": 1.0, "availability": 0.0}
    assert result.weighted["interests"] == pytest.approx(0.266667, abs=1e-6)
    assert result.pair == ("a", "b")


def test_score_is_symmetric_and_bounded():
    scorer = CompatibilityScorer()
    members = [
        _member("m1", interests=frozenset({"Research", "Travel"}), city="Boston"),
        _member("m2", specialty="Surgery", interests=frozenset({"Travel"}), city="Chicago"),
        _member("m3", interests=frozenset(), availability_slots=frozenset({"weekend_mornings"})),
        _member("m4", specialty="Surgery", interests=frozenset({"Research", "Travel", "AI"}), availability_slots=frozenset({"weekend_mornings"})),
    ]
    for a in members:
        for b in members:
            forward = scorer.score(a, b)
            backward = scorer.score(b, a)
            assert forward == backward
            assert 0.0 <= forward.value <= 1.0


def test_empty_sets_never_divide_by_zero():
    assert overlap_ratio([], []) == 0.0
    assert overlap_ratio(None, {"x"}) == 0.0

    a = _member("a", specialty="Surgery", city="Boston")
    b = _member("b", specialty="Radiology", city="Toronto")
    result = CompatibilityScorer().score(a, b)
    assert result.value == 0.0
    assert not math.isnan(result.value)


def test_identical_profiles_score_one():
    a = _member("a", interests=frozenset({"AI"}), availability_slots=frozenset({"mon"}))
    b = _member("b", interests=frozenset({"AI"}), availability_slots=frozenset({"mon"}))
    assert CompatibilityScorer().score(a, b).value == 1.0


def test_custom_weights_are_applied():
    scorer = CompatibilityScorer({"specialty": 0.0, "interests": 0.0, "city": 1.0, "availability": 0.0})
    a = _member("a", specialty="Surgery")
    b = _member("b", specialty="Radiology")
    assert scorer.score(a, b).value == 1.0


class TestWeightValidation:
    def test_rejects_weights_not_summing_to_one(self):
        with pytest.raises(InvalidConfiguration) as excinfo:
            validate_weights({"specialty": 0.5, "interests": 0.5, "city": 0.5, "availability": 0.0})
        assert excinfo.value.kind == ErrorKind.CONFIGURATION

    def test_rejects_unknown_or_missing_keys(self):
        with pytest.raises(InvalidConfiguration):
            validate_weights({"specialty": 0.5, "interests": 0.5})
        with pytest.raises(InvalidConfiguration):
            CompatibilityScorer({"specialty": 0.3, "interests": 0.4, "city": 0.2, "availability": 0.05, "vibes": 0.05})

    def test_rejects_out_of_range_and_non_numeric(self):
        with pytest.raises(InvalidConfiguration):
            validate_weights({"specialty": 1.2, "interests": -0.2, "city": 0.0, "availability": 0.0})
        with pytest.raises(InvalidConfiguration):
            validate_weights({"specialty": "heavy", "interests": 0.4, "city": 0.2, "availability": 0.1})

    def test_accepts_float_noise(self):
        weights = validate_weights({"specialty": 0.1, "interests": 0.2, "city": 0.3, "availability": 0.4000000001})
        assert weights["availability"] == pytest.approx(0.4)


def test_score_matrix_covers_every_pair_once():
    pool = [_member(f"m{i}") for i in range(5)]
    matrix = CompatibilityScorer().score_matrix(pool)
    assert len(matrix) == 10
    assert matrix.score(pool[3], pool[1]).pair == ("m1", "m3")
    assert all(v == pytest.approx(0.5) for v in matrix.values())
