"""Tournament pairing strategies; every entrant is scheduled at least once."""

from __future__ import annotations

import itertools
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .errors import InvalidInput
from .models import Work


@dataclass(frozen=True)
class Pairing:
    round_index: int
    work_a: Work
    work_b: Work


def recommended_pairwise_rounds(count: int) -> int:
    if count <= 10:
        return 3
    if count <= 20:
        return 4
    if count <= 35:
        return 5
    return 6


def _pair_key(a: Work, b: Work) -> Tuple[str, str]:
    left, right = sorted([a.id, b.id])
    return left, right


def _check_entrants(works: Sequence[Work]) -> None:
    if len(works) < 2:
        raise InvalidInput("A tournament needs at least two works")
    ids = [work.id for work in works]
    if len(set(ids)) != len(ids):
        raise InvalidInput("Tournament entrants must be distinct works")


def round_robin(works: Sequence[Work], **_: object) -> List[Pairing]:
    """Every pair once, grouped into rounds with the circle method."""

    _check_entrants(works)
    slots: List[Optional[Work]] = list(works)
    if len(slots) % 2:
        slots.append(None)
    half = len(slots) // 2
    pairings: List[Pairing] = []
    for round_idx in range(len(slots) - 1):
        for left, right in zip(slots[:half], reversed(slots[half:])):
            if left is not None and right is not None:
                pairings.append(Pairing(round_idx + 1, left, right))
        slots = [slots[0], slots[-1], *slots[1:-1]]
    return pairings


def random_rounds(
    works: Sequence[Work],
    *,
    rounds: int = 0,
    rng: Optional[random.Random] = None,
    **_: object,
) -> List[Pairing]:
    """Shuffled rounds without repeated pairs; stragglers get one extra match."""

    _check_entrants(works)
    rng = rng or random.Random()
    max_rounds = len(works) - 1
    rounds = min(rounds or recommended_pairwise_rounds(len(works)), max_rounds)
    used_pairs: Set[Tuple[str, str]] = set()
    pairings: List[Pairing] = []

    for round_idx in range(rounds):
        shuffled = list(works)
        rng.shuffle(shuffled)
        while len(shuffled) >= 2:
            first = shuffled.pop()
            second = shuffled.pop()
            key = _pair_key(first, second)
            if key in used_pairs:
                swapped = False
                for idx, candidate in enumerate(shuffled):
                    alt_key = _pair_key(first, candidate)
                    if alt_key not in used_pairs:
                        shuffled[idx] = second
                        second = candidate
                        key = alt_key
                        swapped = True
                        break
                if not swapped:
                    continue
            used_pairs.add(key)
            pairings.append(Pairing(round_idx + 1, first, second))

    scheduled = {work.id for pairing in pairings for work in (pairing.work_a, pairing.work_b)}
    for work in works:
        if work.id in scheduled:
            continue
        partners = [
            other
            for other in works
            if other.id != work.id and _pair_key(work, other) not in used_pairs
        ]
        partner = rng.choice(partners)
        used_pairs.add(_pair_key(work, partner))
        pairings.append(Pairing(rounds + 1, work, partner))
        scheduled.update({work.id, partner.id})
    return pairings


def _seed_key(work: Work) -> Tuple[int, str]:
    score = work.curation.score if work.is_curated else -1
    return -score, work.created_at


def bracket(works: Sequence[Work], **_: object) -> List[Pairing]:
    """Seeded first round: 1 v N, 2 v N-1, ...; an odd middle seed meets seed 1."""

    _check_entrants(works)
    seeded = sorted(works, key=_seed_key)
    pairings: List[Pairing] = []
    low, high = 0, len(seeded) - 1
    while low < high:
        pairings.append(Pairing(1, seeded[low], seeded[high]))
        low += 1
        high -= 1
    if low == high:
        pairings.append(Pairing(1, seeded[0], seeded[low]))
    return pairings


STRATEGIES: Dict[str, Callable[..., List[Pairing]]] = {
    "round_robin": round_robin,
    "random": random_rounds,
    "bracket": bracket,
}


def build_pairings(
    works: Sequence[Work],
    strategy: str,
    *,
    rounds: int = 0,
    rng: Optional[random.Random] = None,
) -> List[Pairing]:
    try:
        builder = STRATEGIES[strategy]
    except KeyError:
        raise InvalidInput(
            f"Unknown pairing strategy '{strategy}' (expected one of {sorted(STRATEGIES)})"
        ) from None
    return builder(works, rounds=rounds, rng=rng)


def covers_all(works: Sequence[Work], pairings: Sequence[Pairing]) -> bool:
    seen = set(itertools.chain.from_iterable((p.work_a.id, p.work_b.id) for p in pairings))
    return all(work.id in seen for work in works)


__all__ = [
    "Pairing",
    "STRATEGIES",
    "recommended_pairwise_rounds",
    "round_robin",
    "random_rounds",
    "bracket",
    "build_pairings",
    "covers_all",
]
