from datetime import datetime, timezone

import pytest

from rounds_match.entities import Gender, Member, SpecialtyPreference
from rounds_match.errors import InvalidConfiguration
from rounds_match.services.assembly import GroupAssembler, gender_balanced, mutually_compatible
from rounds_match.services.eligibility import filter_eligible
from rounds_match.services.scoring import CompatibilityScorer
from rounds_match.services.seeding import synthetic_roster


def _member(member_id: str, gender: Gender = Gender.MALE, **kwargs) -> Member:
    data = {
        "specialty": "Cardiology",
        "interests": frozenset({"Research", "Travel"}),
        "city": "Boston",
        "availability_slots": frozenset({"weekday_evenings"}),
        "verified": True,
        "paid": True,
        "onboarding_complete": True,
    }
    data.update(kwargs)
    return Member(id=member_id, gender=gender, **data)


def _alternating(n: int, **kwargs) -> list[Member]:
    return [_member(f"m{i}", Gender.MALE if i % 2 == 0 else Gender.FEMALE, **kwargs) for i in range(n)]


def _assert_group_invariants(result, pool):
    seen = set()
    for group in result.groups:
        assert 3 <= len(group.member_ids) <= 4
        assert len(set(group.member_ids)) == len(group.member_ids)
        assert not seen.intersection(group.member_ids)
        seen.update(group.member_ids)
        members = [m for m in pool if m.id in group.member_ids]
        assert gender_balanced(members)
    leftover_ids = {m.id for m in result.leftovers}
    assert not seen.intersection(leftover_ids)
    assert seen | leftover_ids == {m.id for m in pool}


def test_nine_uniform_members_form_two_groups_of_four():
    pool = _alternating(9)
    result = GroupAssembler().assemble(pool, CompatibilityScorer())

    assert [g.member_ids for g in result.groups] == [("m0", "m1", "m2", "m3"), ("m4", "m5", "m6", "m7")]
    assert [m.id for m in result.leftovers] == ["m8"]
    assert result.groups[0].average_compatibility == 1.0
    assert result.groups[0].contributions == {"m0": 1.0, "m1": 1.0, "m2": 1.0, "m3": 1.0}


def test_assembly_is_reproducible_for_identical_input():
    now = datetime(2024, 3, 4, tzinfo=timezone.utc)
    pool = filter_eligible(synthetic_roster(40, seed=7, now=now), now)
    scorer = CompatibilityScorer()

    first = GroupAssembler().assemble(pool, scorer)
    second = GroupAssembler().assemble(pool, scorer.score_matrix(pool))

    assert [g.member_ids for g in first.groups] == [g.member_ids for g in second.groups]
    assert [m.id for m in first.leftovers] == [m.id for m in second.leftovers]
    _assert_group_invariants(first, pool)


def test_single_gender_pool_defers_everyone():
    pool = [_member(f"m{i}", Gender.MALE) for i in range(4)]
    result = GroupAssembler().assemble(pool, CompatibilityScorer())

    assert result.groups == []
    assert [m.id for m in result.leftovers] == ["m0", "m1", "m2", "m3"]
    assert result.deferred


def test_falls_back_to_three_when_four_is_unbalanced():
    pool = [
        _member("a", Gender.MALE),
        _member("b", Gender.MALE),
        _member("c", Gender.MALE),
        _member("d", Gender.FEMALE),
    ]
    result = GroupAssembler().assemble(pool, CompatibilityScorer())

    assert len(result.groups) == 1
    assert len(result.groups[0].member_ids) == 3
    assert "d" in result.groups[0].member_ids
    assert len(result.leftovers) == 1
    _assert_group_invariants(result, pool)


def test_specialty_preference_is_respected_both_ways():
    same = _member("s", Gender.FEMALE, specialty="Radiology", specialty_preference=SpecialtyPreference.SAME)
    surgeon = _member("x", Gender.MALE, specialty="Surgery")
    different = _member("d", Gender.FEMALE, specialty_preference=SpecialtyPreference.DIFFERENT)
    cardio = _member("c", Gender.MALE)

    assert not mutually_compatible(same, surgeon)
    assert not mutually_compatible(surgeon, same)
    assert not mutually_compatible(different, cardio)
    assert mutually_compatible(different, surgeon)

    pool = [same] + _alternating(6)
    result = GroupAssembler().assemble(pool, CompatibilityScorer())
    assert all("s" not in g.member_ids for g in result.groups)
    assert "s" in {m.id for m in result.leftovers}
    _assert_group_invariants(result, pool)


def test_low_compatibility_seed_is_deferred_not_forced():
    pool = [
        _member(f"m{i}", Gender.MALE if i % 2 == 0 else Gender.FEMALE, specialty=f"S{i}", city=f"C{i}", interests=frozenset({f"I{i}"}), availability_slots=frozenset())
        for i in range(6)
    ]
    result = GroupAssembler().assemble(pool, CompatibilityScorer())

    assert result.groups == []
    assert len(result.leftovers) == 6
    assert result.deferred


def test_groups_meet_minimum_compatibility():
    now = datetime(2024, 3, 4, tzinfo=timezone.utc)
    pool = filter_eligible(synthetic_roster(60, seed=3, now=now), now)
    assembler = GroupAssembler(min_compatibility=0.4)
    result = assembler.assemble(pool, CompatibilityScorer())

    assert all(g.average_compatibility >= 0.4 for g in result.groups)
    _assert_group_invariants(result, pool)


def test_fewer_than_minimum_members_are_all_leftovers():
    pool = _alternating(2)
    result = GroupAssembler().assemble(pool, CompatibilityScorer())
    assert result.groups == []
    assert [m.id for m in result.leftovers] == ["m0", "m1"]


class TestAssemblerConfiguration:
    def test_min_above_max_is_rejected(self):
        with pytest.raises(InvalidConfiguration):
            GroupAssembler(min_group_size=5, max_group_size=4)

    def test_bad_threshold_and_neighborhood_are_rejected(self):
        with pytest.raises(InvalidConfiguration):
            GroupAssembler(min_compatibility=1.5)
        with pytest.raises(InvalidConfiguration):
            GroupAssembler(neighborhood_size=2)
        with pytest.raises(InvalidConfiguration):
            GroupAssembler(min_group_size=1)


@pytest.mark.parametrize("roster_seed", [1, 2, 5, 11])
def test_each_seed_has_the_highest_remaining_strength(monkeypatch, roster_seed):
    now = datetime(2024, 3, 4, tzinfo=timezone.utc)
    pool = filter_eligible(synthetic_roster(30, seed=roster_seed, now=now), now)
    assembler = GroupAssembler(min_compatibility=0.45)
    take = assembler.max_group_size - 1
    remaining = {m.id for m in pool}
    picks = []
    original = GroupAssembler._form_group

    def recording(self, seed, available, members, s):
        strengths = {}
        for mid in remaining:
            scores = sorted(
                (s(mid, pid) for pid in remaining if pid != mid and mutually_compatible(members[mid], members[pid])),
                reverse=True,
            )
            strengths[mid] = round(sum(scores[:take]) / take, 9)
        top = max(strengths.values())
        assert strengths[seed] == top
        assert seed == min(mid for mid, value in strengths.items() if value == top)
        picks.append(seed)

        proposal = original(self, seed, available, members, s)
        if proposal is None:
            remaining.discard(seed)
        else:
            remaining.difference_update(proposal.member_ids)
        return proposal

    monkeypatch.setattr(GroupAssembler, "_form_group", recording)
    result = assembler.assemble(pool, CompatibilityScorer())

    assert picks
    _assert_group_invariants(result, pool)
