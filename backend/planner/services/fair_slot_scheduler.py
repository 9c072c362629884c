"""
Fair Slot Scheduler - greedy, deterministic slot/field assignment

Assigns pairings to (slot, field) cells:
1. Walk slots in order, fields 1..N inside each slot
2. For each free cell, score every remaining pairing and commit the lowest
3. Ties keep input order (strict < comparison)
4. Infeasible pairings score +inf (team already in this slot, or inside the
   rest window of min_rest_slots)
5. If nothing fits a slot, the slot stays empty and the next one is tried.
   Only after min_rest_slots + 1 empty slots in a row is the rest rule
   relaxed for one placement (recorded as RestRelaxation); every team has
   rested by then, so this guard only bounds the loop

After slotting, a home/away post-pass swaps sides where that lowers the
total imbalance. Timing (start/end/match_number) is applied separately by
schedule_matches() so hand-placed or persisted slot hints use the same rule.
"""

import logging
import math
from dataclasses import dataclass, field as dc_field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from planner.models.schedule_types import FinalType, PhaseName, ScheduledMatch
from planner.models.tournament_config import TeamEntry
from planner.services.pairing import Pairing
from planner.utils.schedule_time import add_minutes, calculate_total_match_duration, format_time

logger = logging.getLogger(__name__)

# Fallbacks for invalid inputs (generator stays total)
DEFAULT_NUMBER_OF_FIELDS = 1
DEFAULT_GAME_DURATION = 10

FIELD_REUSE_WEIGHT = 10
HOME_AWAY_PENALTY = 5
SLOT_WEIGHT = 0.1


# ============================================================================
# Team state tracking
# ============================================================================


class TeamScheduleState:
    """Tracks slots, fields and home/away counts for a single team"""

    def __init__(self, team_id: str):
        self.team_id = team_id
        self.match_slots: List[int] = []
        self.field_counts: Dict[int, int] = {}
        self.home_count = 0
        self.away_count = 0

    @property
    def last_slot(self) -> Optional[int]:
        return self.match_slots[-1] if self.match_slots else None

    def average_rest(self, default: float) -> float:
        if len(self.match_slots) < 2:
            return default
        gaps = [b - a for a, b in zip(self.match_slots, self.match_slots[1:])]
        return sum(gaps) / len(gaps)

    def record(self, slot: int, field_number: int, is_home: bool):
        self.match_slots.append(slot)
        self.field_counts[field_number] = self.field_counts.get(field_number, 0) + 1
        if is_home:
            self.home_count += 1
        else:
            self.away_count += 1


class ScheduleStateTracker:
    """Tracks scheduling state for all teams during one scheduling run"""

    def __init__(self):
        self.team_states: Dict[str, TeamScheduleState] = {}

    def get_or_create_state(self, team_id: str) -> TeamScheduleState:
        if team_id not in self.team_states:
            self.team_states[team_id] = TeamScheduleState(team_id)
        return self.team_states[team_id]

    def can_play(self, team_id: str, slot: int, min_rest_slots: int) -> bool:
        """A team may play when at least min_rest_slots idle slots passed since its last match."""
        state = self.team_states.get(team_id)
        if state is None or state.last_slot is None:
            return True
        return slot - state.last_slot >= min_rest_slots + 1


class RestRelaxation:
    """A placement made although a team had not rested min_rest_slots"""

    def __init__(self, pairing: Pairing, slot: int, required_rest_slots: int, actual_rest_slots: Optional[int]):
        self.pairing = pairing
        self.slot = slot
        self.required_rest_slots = required_rest_slots
        self.actual_rest_slots = actual_rest_slots

    def describe(self) -> str:
        a, b = self.pairing.team_ids()
        return (
            f"{a} vs {b} placed in slot {self.slot} with rest {self.actual_rest_slots} "
            f"(required {self.required_rest_slots})"
        )


@dataclass
class SlottedPairing:
    pairing: Pairing
    slot: int
    field: int
    home: TeamEntry
    away: TeamEntry


# ============================================================================
# Scheduler
# ============================================================================


class FairSlotScheduler:
    """
    Greedy fairness scheduler for group-stage pairings.

    One instance per scheduling run; relaxations of the last run are kept
    in self.relaxations.
    """

    def __init__(self, number_of_fields: int, min_rest_slots: int = 1, start_slot: int = 0):
        if number_of_fields < 1:
            logger.warning("number_of_fields=%s invalid, using %s", number_of_fields, DEFAULT_NUMBER_OF_FIELDS)
            number_of_fields = DEFAULT_NUMBER_OF_FIELDS
        self.number_of_fields = number_of_fields
        self.min_rest_slots = max(0, min_rest_slots)
        self.start_slot = max(0, start_slot)
        self.relaxations: List[RestRelaxation] = []

    def fairness_score(
        self,
        pairing: Pairing,
        slot: int,
        field_number: int,
        tracker: ScheduleStateTracker,
        min_rest_slots: int,
    ) -> float:
        """
        Lower score = fairer placement. +inf when the placement is infeasible.

        Terms:
        - deviation of this rest gap from the team's average gap so far
        - share of the team's matches already played on this field
        - home/away imbalance growth (team_a home, team_b away)
        - small bias towards earlier slots
        """
        team_a, team_b = pairing.team_ids()
        if not tracker.can_play(team_a, slot, min_rest_slots) or not tracker.can_play(team_b, slot, min_rest_slots):
            return math.inf

        state_a = tracker.get_or_create_state(team_a)
        state_b = tracker.get_or_create_state(team_b)
        score = 0.0

        for state in (state_a, state_b):
            if state.last_slot is not None:
                rest = slot - state.last_slot
                score += abs(rest - state.average_rest(rest))

        for state in (state_a, state_b):
            played = len(state.match_slots)
            if played > 0:
                score += state.field_counts.get(field_number, 0) / played * FIELD_REUSE_WEIGHT

        if abs(state_a.home_count + 1 - state_a.away_count) > abs(state_a.home_count - state_a.away_count):
            score += HOME_AWAY_PENALTY
        if abs(state_b.home_count - (state_b.away_count + 1)) > abs(state_b.home_count - state_b.away_count):
            score += HOME_AWAY_PENALTY

        score += slot * SLOT_WEIGHT
        return score

    def _pick_best(
        self,
        remaining: List[Pairing],
        slot: int,
        field_number: int,
        tracker: ScheduleStateTracker,
        min_rest_slots: int,
    ) -> Optional[int]:
        best_index: Optional[int] = None
        best_score = math.inf
        for index, pairing in enumerate(remaining):
            score = self.fairness_score(pairing, slot, field_number, tracker, min_rest_slots)
            if score < best_score:
                best_score = score
                best_index = index
        return best_index

    def schedule(self, pairings: Sequence[Pairing]) -> List[SlottedPairing]:
        """Assign every pairing to a unique (slot, field) cell."""
        self.relaxations = []
        tracker = ScheduleStateTracker()
        remaining = list(pairings)
        placed: List[SlottedPairing] = []
        slot = self.start_slot
        empty_slots = 0

        while remaining:
            placed_in_slot = 0
            relax = empty_slots > self.min_rest_slots
            for field_number in range(1, self.number_of_fields + 1):
                if not remaining:
                    break
                index = self._pick_best(remaining, slot, field_number, tracker, self.min_rest_slots)

                if index is None and relax and placed_in_slot == 0:
                    # Still stuck after a full rest window: relax rest, keep same-slot exclusion
                    index = self._pick_best(remaining, slot, field_number, tracker, 0)
                    if index is not None:
                        self._record_relaxation(remaining[index], slot, tracker)

                if index is None:
                    # Feasibility does not depend on the field: later fields fail too
                    break

                pairing = remaining.pop(index)
                tracker.get_or_create_state(pairing.team_a.id).record(slot, field_number, is_home=True)
                tracker.get_or_create_state(pairing.team_b.id).record(slot, field_number, is_home=False)
                placed.append(
                    SlottedPairing(
                        pairing=pairing, slot=slot, field=field_number, home=pairing.team_a, away=pairing.team_b
                    )
                )
                placed_in_slot += 1

            empty_slots = empty_slots + 1 if placed_in_slot == 0 else 0
            logger.debug("Slot %d: %d match(es) placed, %d remaining", slot, placed_in_slot, len(remaining))
            slot += 1

        balance_home_away(placed)
        return placed

    def _record_relaxation(self, pairing: Pairing, slot: int, tracker: ScheduleStateTracker):
        rests = []
        for team_id in pairing.team_ids():
            state = tracker.team_states.get(team_id)
            if state is not None and state.last_slot is not None:
                rests.append(slot - state.last_slot - 1)
        relaxation = RestRelaxation(
            pairing=pairing,
            slot=slot,
            required_rest_slots=self.min_rest_slots,
            actual_rest_slots=min(rests) if rests else None,
        )
        self.relaxations.append(relaxation)
        logger.warning("Rest constraint relaxed: %s", relaxation.describe())


def balance_home_away(placed: List[SlottedPairing]) -> None:
    """
    Swap home/away in place where it lowers the combined imbalance of both teams.
    Runs after slotting so rest fairness is unaffected.
    """
    balance: Dict[str, List[int]] = {}
    for item in placed:
        balance.setdefault(item.home.id, [0, 0])[0] += 1
        balance.setdefault(item.away.id, [0, 0])[1] += 1

    for item in placed:
        home_counts = balance[item.home.id]
        away_counts = balance[item.away.id]
        current = abs(home_counts[0] - home_counts[1]) + abs(away_counts[0] - away_counts[1])
        swapped = abs((home_counts[0] - 1) - (home_counts[1] + 1)) + abs((away_counts[0] + 1) - (away_counts[1] - 1))
        if swapped < current:
            item.home, item.away = item.away, item.home
            home_counts[0] -= 1
            home_counts[1] += 1
            away_counts[0] += 1
            away_counts[1] -= 1


# ============================================================================
# Timing
# ============================================================================


@dataclass
class MatchDraft:
    """
    A match before timing is applied.

    team_a / team_b hold a team id or a placeholder reference.
    slot takes precedence over round as the ordering hint.
    """

    id: str
    team_a: str
    team_b: str
    field: int = 1
    slot: Optional[int] = None
    round: Optional[int] = None
    group: Optional[str] = None
    phase: PhaseName = "groupStage"
    final_type: Optional[FinalType] = None
    label: Optional[str] = None
    depends_on: List[str] = dc_field(default_factory=list)

    def slot_hint(self) -> int:
        if self.slot is not None:
            return self.slot
        if self.round is not None:
            return self.round - 1
        return 0


def drafts_from_slotted(slotted: Sequence[SlottedPairing]) -> List[MatchDraft]:
    """Group-stage drafts with deterministic ids <group>-<n> (n counts per group)."""
    counters: Dict[str, int] = {}
    drafts: List[MatchDraft] = []
    for item in slotted:
        group = item.pairing.group
        counters[group] = counters.get(group, 0) + 1
        drafts.append(
            MatchDraft(
                id=f"{group.lower()}-{counters[group]}",
                team_a=item.home.id,
                team_b=item.away.id,
                field=item.field,
                slot=item.slot,
                round=item.slot + 1,
                group=group,
            )
        )
    return drafts


def schedule_matches(
    drafts: Sequence[MatchDraft],
    start_time: datetime,
    game_duration: int,
    break_duration: int = 0,
    game_periods: int = 1,
    halftime_break: int = 0,
    start_match_number: int = 1,
    resolve_name: Optional[Callable[[str], str]] = None,
) -> List[ScheduledMatch]:
    """
    Bind drafts to wall-clock times.

    Drafts are stable-sorted by (slot hint, field). The k-th distinct slot
    starts at start_time + k * (match duration + break).
    """
    if game_duration <= 0:
        logger.warning("game_duration=%s invalid, using %s", game_duration, DEFAULT_GAME_DURATION)
        game_duration = DEFAULT_GAME_DURATION
    break_duration = max(0, break_duration)
    match_duration = calculate_total_match_duration(game_duration, game_periods, max(0, halftime_break))
    slot_duration = match_duration + break_duration
    resolve = resolve_name or (lambda ref: ref)

    ordered = sorted(drafts, key=lambda d: (d.slot_hint(), d.field))
    slot_positions: Dict[int, int] = {}
    for draft in ordered:
        slot_positions.setdefault(draft.slot_hint(), len(slot_positions))

    scheduled: List[ScheduledMatch] = []
    match_number = start_match_number
    for draft in ordered:
        position = slot_positions[draft.slot_hint()]
        match_start = add_minutes(start_time, position * slot_duration)
        scheduled.append(
            ScheduledMatch(
                id=draft.id,
                match_number=match_number,
                time=format_time(match_start),
                field=draft.field,
                slot=draft.slot_hint(),
                home_team=resolve(draft.team_a),
                away_team=resolve(draft.team_b),
                original_team_a=draft.team_a,
                original_team_b=draft.team_b,
                group=draft.group,
                phase=draft.phase,
                final_type=draft.final_type,
                label=draft.label,
                start_time=match_start,
                end_time=add_minutes(match_start, match_duration),
                duration=match_duration,
                depends_on=list(draft.depends_on),
            )
        )
        match_number += 1

    return scheduled


# ============================================================================
# Fairness analysis
# ============================================================================


@dataclass
class TeamFairnessStats:
    team_id: str
    match_slots: List[int]
    rests_in_slots: List[int]
    min_rest: int
    max_rest: int
    avg_rest: float
    rest_variance: float
    field_distribution: Dict[int, int]
    home_count: int
    away_count: int

    @property
    def home_away_balance(self) -> int:
        return abs(self.home_count - self.away_count)


@dataclass
class FairnessAnalysis:
    team_stats: List[TeamFairnessStats]
    min_rest_all_teams: int
    max_rest_all_teams: int
    avg_rest_all_teams: float
    total_variance: float

    def to_dict(self) -> Dict:
        return {
            "min_rest_all_teams": self.min_rest_all_teams,
            "max_rest_all_teams": self.max_rest_all_teams,
            "avg_rest_all_teams": round(self.avg_rest_all_teams, 3),
            "total_variance": round(self.total_variance, 3),
            "teams": [
                {
                    "team_id": s.team_id,
                    "match_slots": s.match_slots,
                    "min_rest": s.min_rest,
                    "max_rest": s.max_rest,
                    "avg_rest": round(s.avg_rest, 3),
                    "home_away_balance": s.home_away_balance,
                }
                for s in self.team_stats
            ],
        }


def analyze_schedule_fairness(matches: Sequence[ScheduledMatch]) -> FairnessAnalysis:
    """Rest gaps (in slots), field spread and home/away counts per team."""
    slots_by_team: Dict[str, List[int]] = {}
    fields_by_team: Dict[str, Dict[int, int]] = {}
    home_away: Dict[str, Tuple[int, int]] = {}

    for match in matches:
        for team_id, is_home in ((match.original_team_a, True), (match.original_team_b, False)):
            slots_by_team.setdefault(team_id, []).append(match.slot)
            counts = fields_by_team.setdefault(team_id, {})
            counts[match.field] = counts.get(match.field, 0) + 1
            home, away = home_away.get(team_id, (0, 0))
            home_away[team_id] = (home + 1, away) if is_home else (home, away + 1)

    team_stats: List[TeamFairnessStats] = []
    for team_id, slots in slots_by_team.items():
        slots = sorted(slots)
        rests = [b - a for a, b in zip(slots, slots[1:])]
        avg = sum(rests) / len(rests) if rests else 0.0
        variance = sum((r - avg) ** 2 for r in rests) / len(rests) if rests else 0.0
        home, away = home_away[team_id]
        team_stats.append(
            TeamFairnessStats(
                team_id=team_id,
                match_slots=slots,
                rests_in_slots=rests,
                min_rest=min(rests) if rests else 0,
                max_rest=max(rests) if rests else 0,
                avg_rest=avg,
                rest_variance=variance,
                field_distribution=fields_by_team[team_id],
                home_count=home,
                away_count=away,
            )
        )

    if not team_stats:
        return FairnessAnalysis([], 0, 0, 0.0, 0.0)

    global_avg = sum(s.avg_rest for s in team_stats) / len(team_stats)
    return FairnessAnalysis(
        team_stats=team_stats,
        min_rest_all_teams=min(s.min_rest for s in team_stats),
        max_rest_all_teams=max(s.max_rest for s in team_stats),
        avg_rest_all_teams=global_avg,
        total_variance=sum((s.avg_rest - global_avg) ** 2 for s in team_stats) / len(team_stats),
    )
