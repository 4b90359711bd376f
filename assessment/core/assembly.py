"""
Question assembly: resolves a Pool spec into a concrete ordered selection.

Selection policy, in priority order:
1. Distribution targets. For each targeted category (type, then difficulty,
   then skill, then time bucket; mapping order within each), draw
   min(target, available) items from that category and remove them from the
   remaining pool. Earlier categories are served first when candidates are
   scarce.
2. Fill. While fewer than ``total_questions`` are selected, draw from
   whatever remains with no category preference.
3. Truncate to ``total_questions`` (percent targets can round up).

Strategies:
- random: uniform draws; no implied targets
- balanced: by_difficulty targets, or an even split over the three levels
- progressive: the fill takes the easiest remaining candidates (shuffled
  within a level) and the result is ordered beginner -> advanced
- weighted: every draw is weighted sampling without replacement, with the
  probability of drawing an item proportional to its weight
  (Efraimidis-Spirakis keys, u ** (1 / w))

Candidates are sorted by question id before any random draw, so a fixed
seed reproduces the same selection. The engine is a pure function of its
inputs and the supplied random source; it keeps no state between calls and
never raises on a shortfall: the report carries it instead.
"""

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from assessment.core.question_types import time_bucket_for
from assessment.models.models import (
    Difficulty,
    QuestionType,
    SelectionStrategy,
    Skill,
    TimeBucket,
)
from assessment.schemas.definitions import DistributionSpec, Pool, distribution_targets

logger = logging.getLogger(__name__)

UNASSIGNED_CATEGORY = "unassigned"


@dataclass(frozen=True)
class QuestionRef:
    """Catalog projection of an active question, as consumed by assembly."""

    question_id: int
    question_type: QuestionType
    skill: Skill
    difficulty: Difficulty
    points: int
    estimated_time_seconds: int
    weight: float = 1.0

    @property
    def time_bucket(self) -> TimeBucket:
        return time_bucket_for(self.estimated_time_seconds)


@dataclass(frozen=True)
class SelectedQuestion:
    """A drawn question with its resolved point value."""

    question_id: int
    points: int
    question_type: QuestionType
    difficulty: Difficulty


@dataclass(frozen=True)
class AssemblyReport:
    """
    Outcome of one assembly call.

    Attributes:
        requested: Pool total_questions
        selected: Number of questions actually selected
        shortfall_by_category: The deficit (requested - selected) attributed
            to targeted categories in processing order, capped by what each
            category failed to supply; any rest is under "unassigned".
            Values always sum to the deficit.
        unmet_targets: Per targeted category, how many items it could not
            supply when its target was drawn (reported even if the fill
            later made up the total)
        strategy: Strategy used
    """

    requested: int
    selected: int
    shortfall_by_category: Dict[str, int] = field(default_factory=dict)
    unmet_targets: Dict[str, int] = field(default_factory=dict)
    strategy: SelectionStrategy = SelectionStrategy.RANDOM

    @property
    def shortfall(self) -> int:
        return self.requested - self.selected

    @property
    def has_shortfall(self) -> bool:
        return self.shortfall > 0 or bool(self.unmet_targets)


Target = Tuple[str, str, object, int]


def _even_difficulty_split(total_questions: int) -> List[Target]:
    """Split evenly over beginner/intermediate/advanced; remainder to easier levels."""
    levels = list(Difficulty)
    base, remainder = divmod(total_questions, len(levels))
    return [
        (
            f"difficulty:{level.value}",
            "difficulty",
            level,
            base + (1 if i < remainder else 0),
        )
        for i, level in enumerate(levels)
    ]


def _resolve_targets(pool: Pool) -> List[Target]:
    distribution = pool.distribution or DistributionSpec()
    targets = distribution_targets(distribution, pool.total_questions)
    if (
        pool.selection_strategy is SelectionStrategy.BALANCED
        and not distribution.by_difficulty
    ):
        # Difficulty targets sit after type targets in processing order
        insert_at = len(distribution.by_type)
        targets[insert_at:insert_at] = _even_difficulty_split(pool.total_questions)
    return targets


def _resolve_candidates(pool: Pool, candidates: Iterable[QuestionRef]) -> List[QuestionRef]:
    """Restrict to the pool's eligible set and apply per-entry overrides."""
    unique: Dict[int, QuestionRef] = {}
    for ref in candidates:
        unique.setdefault(ref.question_id, ref)

    entries = pool.entry_map()
    if entries:
        resolved = []
        for question_id, ref in unique.items():
            entry = entries.get(question_id)
            if entry is None:
                continue
            resolved.append(
                replace(
                    ref,
                    points=entry.points if entry.points is not None else ref.points,
                    weight=entry.weight,
                )
            )
    else:
        resolved = list(unique.values())

    return sorted(resolved, key=lambda r: r.question_id)


class _Drawer:
    """Draws k items from a candidate list according to the strategy."""

    def __init__(self, strategy: SelectionStrategy, rng: random.Random):
        self.strategy = strategy
        self.rng = rng

    def draw(self, items: Sequence[QuestionRef], k: int) -> List[QuestionRef]:
        k = min(k, len(items))
        if k <= 0:
            return []
        if self.strategy is SelectionStrategy.WEIGHTED:
            return self._weighted_sample(items, k)
        return self.rng.sample(list(items), k)

    def fill(self, items: Sequence[QuestionRef], k: int) -> List[QuestionRef]:
        if self.strategy is SelectionStrategy.PROGRESSIVE:
            k = min(k, len(items))
            if k <= 0:
                return []
            shuffled = self.rng.sample(list(items), len(items))
            shuffled.sort(key=lambda r: r.difficulty.rank)  # stable
            return shuffled[:k]
        return self.draw(items, k)

    def _weighted_sample(self, items: Sequence[QuestionRef], k: int) -> List[QuestionRef]:
        keyed = [
            (self.rng.random() ** (1.0 / item.weight), item) for item in items
        ]
        keyed.sort(key=lambda pair: (-pair[0], pair[1].question_id))
        return [item for _, item in keyed[:k]]


def _limit_consecutive_difficult(
    selection: List[QuestionRef], limit: int
) -> List[QuestionRef]:
    """
    Reorder so that at most ``limit`` advanced questions are adjacent.

    Keeps the existing order wherever possible. An advanced item that would
    exceed the run is deferred behind the next non-advanced one, and a
    non-advanced item is held back while it is needed as a separator later.
    If there are too few non-advanced items, the tail necessarily breaks
    the rule.
    """
    pending = list(selection)
    result: List[QuestionRef] = []
    run = 0
    advanced_left = sum(1 for q in pending if q.difficulty is Difficulty.ADVANCED)
    other_left = len(pending) - advanced_left

    def first_index(advanced: bool) -> Optional[int]:
        for i, q in enumerate(pending):
            if (q.difficulty is Difficulty.ADVANCED) == advanced:
                return i
        return None

    while pending:
        head_advanced = pending[0].difficulty is Difficulty.ADVANCED
        index = 0
        if head_advanced and run >= limit:
            separator = first_index(False)
            if separator is not None:
                index = separator
        elif not head_advanced and run < limit and advanced_left > limit * other_left:
            # Spending this separator now would strand advanced items later
            index = first_index(True) or 0

        item = pending.pop(index)
        if item.difficulty is Difficulty.ADVANCED:
            run += 1
            advanced_left -= 1
        else:
            run = 0
            other_left -= 1
        result.append(item)

    return result


def _attribute_shortfall(deficit: int, unmet_targets: Dict[str, int]) -> Dict[str, int]:
    shortfall: Dict[str, int] = {}
    remaining = deficit
    for category, unmet in unmet_targets.items():
        if remaining <= 0:
            break
        take = min(unmet, remaining)
        shortfall[category] = take
        remaining -= take
    if remaining > 0:
        shortfall[UNASSIGNED_CATEGORY] = remaining
    return shortfall


def assemble(
    pool: Pool,
    candidates: Iterable[QuestionRef],
    rng: Optional[random.Random] = None,
) -> Tuple[List[SelectedQuestion], AssemblyReport]:
    """
    Select up to ``pool.total_questions`` questions from ``candidates``.

    The caller filters candidates to active questions of the allowed types.
    When ``pool.available_questions`` is non-empty only those ids are
    eligible, and their entries override points and weight.

    Args:
        pool: Pool specification
        candidates: Active catalog questions eligible for this pool
        rng: Random source; pass a seeded instance for reproducible draws

    Returns:
        Tuple of (selection, report). ``len(selection) <= total_questions``
        with no duplicate ids.
    """
    if rng is None:
        rng = random.Random()

    strategy = pool.selection_strategy
    total = pool.total_questions
    drawer = _Drawer(strategy, rng)
    remaining = _resolve_candidates(pool, candidates)

    selected: List[QuestionRef] = []
    unmet_targets: Dict[str, int] = {}

    # Step 1: distribution targets
    for category, attribute, value, count in _resolve_targets(pool):
        if count <= 0:
            continue
        members = [r for r in remaining if getattr(r, attribute) == value]
        drawn = drawer.draw(members, count)
        if len(drawn) < count:
            unmet_targets[category] = count - len(drawn)
        drawn_ids = {r.question_id for r in drawn}
        remaining = [r for r in remaining if r.question_id not in drawn_ids]
        selected.extend(drawn)

    # Step 2: fill
    if len(selected) < total and pool.constraints.ensure_variety:
        represented = {r.question_type for r in selected}
        for question_type in QuestionType:
            if len(selected) >= total:
                break
            if question_type in represented:
                continue
            members = [r for r in remaining if r.question_type is question_type]
            for ref in drawer.draw(members, 1):
                selected.append(ref)
                remaining = [r for r in remaining if r.question_id != ref.question_id]

    if len(selected) < total:
        selected.extend(drawer.fill(remaining, total - len(selected)))

    # Step 3: truncate
    selected = selected[:total]

    if strategy is SelectionStrategy.PROGRESSIVE:
        selected.sort(key=lambda r: r.difficulty.rank)
    else:
        rng.shuffle(selected)
        limit = pool.constraints.max_consecutive_difficult
        if limit is not None:
            selected = _limit_consecutive_difficult(selected, limit)

    deficit = total - len(selected)
    report = AssemblyReport(
        requested=total,
        selected=len(selected),
        shortfall_by_category=_attribute_shortfall(deficit, unmet_targets),
        unmet_targets=unmet_targets,
        strategy=strategy,
    )

    if report.has_shortfall:
        logger.warning(
            f"Pool could not be fully satisfied: requested {total}, "
            f"selected {len(selected)}, unmet targets {unmet_targets}",
            extra={"strategy": strategy.value},
        )

    selection = [
        SelectedQuestion(
            question_id=r.question_id,
            points=r.points,
            question_type=r.question_type,
            difficulty=r.difficulty,
        )
        for r in selected
    ]
    return selection, report
