from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Protocol, Sequence

from ..config import MAX_GROUP_SIZE, MIN_COMPATIBILITY, MIN_GROUP_SIZE, SEED_NEIGHBORHOOD_K
from ..entities import CompatibilityScore, Gender, GroupProposal, Member, SpecialtyPreference, canonical_pair
from ..errors import InvalidConfiguration

logger = logging.getLogger(__name__)


class PairScorer(Protocol):
    def score(self, a: Member, b: Member) -> CompatibilityScore: ...


@dataclass
class AssemblyResult:
    groups: list[GroupProposal] = field(default_factory=list)
    leftovers: list[Member] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)


def preference_allows(member: Member, other: Member) -> bool:
    pref = member.specialty_preference or SpecialtyPreference.NO_PREFERENCE
    if pref == SpecialtyPreference.SAME:
        return member.specialty == other.specialty
    if pref == SpecialtyPreference.DIFFERENT:
        return member.specialty != other.specialty
    return True


def mutually_compatible(a: Member, b: Member) -> bool:
    return preference_allows(a, b) and preference_allows(b, a)


def gender_balanced(members: Sequence[Member]) -> bool:
    males = sum(1 for m in members if m.gender == Gender.MALE)
    females = sum(1 for m in members if m.gender == Gender.FEMALE)
    return abs(males - females) <= 1


class GroupAssembler:
    """Greedy, seed-driven group formation.

    Each round picks the remaining member whose best possible group-mates score
    highest, then searches subsets drawn from that seed's top
    ``neighborhood_size`` remaining partners. Larger groups are tried first. A
    seed with no qualifying subset is deferred instead of being forced into a
    weak group.
    """

    def __init__(
        self,
        min_group_size: int = MIN_GROUP_SIZE,
        max_group_size: int = MAX_GROUP_SIZE,
        min_compatibility: float = MIN_COMPATIBILITY,
        neighborhood_size: int = SEED_NEIGHBORHOOD_K,
    ) -> None:
        if min_group_size < 2:
            raise InvalidConfiguration(f"min_group_size must be at least 2; got {min_group_size}")
        if min_group_size > max_group_size:
            raise InvalidConfiguration(f"min_group_size ({min_group_size}) exceeds max_group_size ({max_group_size})")
        if not 0.0 <= float(min_compatibility) <= 1.0:
            raise InvalidConfiguration(f"min_compatibility must be within [0, 1]; got {min_compatibility}")
        if neighborhood_size < max_group_size - 1:
            raise InvalidConfiguration(
                f"neighborhood_size ({neighborhood_size}) must be at least max_group_size - 1 ({max_group_size - 1})"
            )
        self.min_group_size = int(min_group_size)
        self.max_group_size = int(max_group_size)
        self.min_compatibility = float(min_compatibility)
        self.neighborhood_size = int(neighborhood_size)

    def assemble(self, pool: Sequence[Member], scorer: PairScorer) -> AssemblyResult:
        members: dict[str, Member] = {}
        order: list[str] = []
        for m in pool:
            if m.id in members:
                continue
            members[m.id] = m
            order.append(m.id)

        pair_scores: dict[tuple[str, str], float] = {}

        def s(a: str, b: str) -> float:
            key = canonical_pair(a, b)
            if key not in pair_scores:
                pair_scores[key] = scorer.score(members[a], members[b]).value
            return pair_scores[key]

        partners: dict[str, list[str]] = {}
        for mid in order:
            ranked = [(-s(mid, pid), pid) for pid in order if pid != mid and mutually_compatible(members[mid], members[pid])]
            ranked.sort()
            partners[mid] = [pid for _, pid in ranked]

        remaining = set(order)
        take = self.max_group_size - 1

        def strength(mid: str) -> float:
            best: list[float] = []
            for pid in partners[mid]:
                if pid in remaining:
                    best.append(s(mid, pid))
                    if len(best) == take:
                        break
            # empty partner slots count as zero so strength never rises as members are removed
            return round(sum(best) / take, 9)

        heap = [(-strength(mid), mid) for mid in order]
        heapq.heapify(heap)

        result = AssemblyResult()
        while len(remaining) >= self.min_group_size and heap:
            neg, seed = heapq.heappop(heap)
            if seed not in remaining:
                continue
            current = strength(seed)
            if current != -neg:
                heapq.heappush(heap, (-current, seed))
                continue

            available = [pid for pid in partners[seed] if pid in remaining]
            proposal = self._form_group(seed, available, members, s)

            if proposal is None:
                remaining.discard(seed)
                result.deferred.append(seed)
                logger.info("[ASSEMBLY] deferred seed member_id=%s candidates=%s", seed, len(available))
                continue

            remaining.difference_update(proposal.member_ids)
            result.groups.append(proposal)

        deferred = set(result.deferred)
        result.leftovers = [members[mid] for mid in order if mid in remaining or mid in deferred]
        logger.info(
            "[ASSEMBLY] pool=%s groups=%s leftovers=%s deferred=%s",
            len(order),
            len(result.groups),
            len(result.leftovers),
            len(result.deferred),
        )
        return result

    def _form_group(self, seed: str, available: list[str], members: dict[str, Member], s) -> GroupProposal | None:
        if len(available) < self.min_group_size - 1:
            return None
        return self._best_subset(seed, available[: self.neighborhood_size], members, s)

    def _best_subset(self, seed: str, neighborhood: list[str], members: dict[str, Member], s) -> GroupProposal | None:
        for size in range(self.max_group_size, self.min_group_size - 1, -1):
            if len(neighborhood) < size - 1:
                continue
            best_ids: tuple[str, ...] | None = None
            best_avg = -1.0
            for combo in combinations(neighborhood, size - 1):
                if not all(mutually_compatible(members[a], members[b]) for a, b in combinations(combo, 2)):
                    continue
                ids = tuple(sorted((seed, *combo)))
                if not gender_balanced([members[i] for i in ids]):
                    continue
                avg = round(_average(ids, s), 9)
                if avg < self.min_compatibility:
                    continue
                if avg > best_avg or (avg == best_avg and best_ids is not None and ids < best_ids):
                    best_ids, best_avg = ids, avg
            if best_ids is not None:
                return _proposal(best_ids, s)
        return None


def _average(ids: tuple[str, ...], s) -> float:
    pairs = list(combinations(ids, 2))
    if not pairs:
        return 0.0
    return sum(s(a, b) for a, b in pairs) / len(pairs)


def _proposal(ids: tuple[str, ...], s) -> GroupProposal:
    contributions = {}
    for mid in ids:
        others = [s(mid, other) for other in ids if other != mid]
        contributions[mid] = round(sum(others) / len(others), 6)
    return GroupProposal(
        member_ids=ids,
        average_compatibility=round(_average(ids, s), 6),
        contributions=contributions,
    )
