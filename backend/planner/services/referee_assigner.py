"""
Referee assignment

Modes:
- none:      matches pass through unchanged
- organizer: pool of referees 1..N, workload balanced (max - min <= 1),
             max_consecutive_matches respected where possible
- teams:     the home team of the previous match on the same field referees
             the next one (first match per field has no referee); with a
             finals referee mode, ineligible teams skip playoff matches

Manual assignments are applied last and always win. Output order equals
input order.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from planner.models.schedule_types import ScheduledMatch
from planner.models.tournament_config import (
    NoRefereeConfig,
    OrganizerRefereeConfig,
    TeamEntry,
    TeamRefereeConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_NUMBER_OF_REFEREES = 2

AnyRefereeConfig = Union[NoRefereeConfig, OrganizerRefereeConfig, TeamRefereeConfig]


class RefereeRelaxation:
    """An organizer assignment that breaks the consecutive-match limit"""

    def __init__(self, match_id: str, referee: int, slot: int, reason: str):
        self.match_id = match_id
        self.referee = referee
        self.slot = slot
        self.reason = reason

    def describe(self) -> str:
        return f"referee {self.referee} on {self.match_id} (slot {self.slot}): {self.reason}"


class RefereePoolState:
    """Workload and worked slots per organizer referee"""

    def __init__(self, number_of_referees: int):
        self.workload: Dict[int, int] = {n: 0 for n in range(1, number_of_referees + 1)}
        self.slots: Dict[int, Set[int]] = {n: set() for n in range(1, number_of_referees + 1)}

    def last_slot(self, referee: int) -> Optional[int]:
        return max(self.slots[referee]) if self.slots[referee] else None

    def streak_before(self, referee: int, slot: int) -> int:
        """Consecutive slots worked directly before `slot`."""
        streak = 0
        current = slot - 1
        while current in self.slots[referee]:
            streak += 1
            current -= 1
        return streak

    def record(self, referee: int, slot: int):
        self.workload[referee] += 1
        self.slots[referee].add(slot)


class RefereeAssigner:
    def __init__(self, config: AnyRefereeConfig, teams: Sequence[TeamEntry]):
        self.config = config
        self.teams = list(teams)
        self.relaxations: List[RefereeRelaxation] = []

    def assign(self, matches: Sequence[ScheduledMatch]) -> List[ScheduledMatch]:
        self.relaxations = []
        if self.config.mode == "none":
            return list(matches)

        if self.config.mode == "organizer":
            computed = self._assign_organizer(matches)
        else:
            computed = self._assign_teams(matches)

        result: List[ScheduledMatch] = []
        manual = self.config.manual_assignments
        for match in matches:
            if match.id in manual:
                referee: Optional[int] = manual[match.id]
            elif match.referee is not None:
                referee = match.referee
            else:
                referee = computed.get(match.id)
            result.append(match.model_copy(update={"referee": referee}))
        return result

    # ------------------------------------------------------------------
    # Organizer pool
    # ------------------------------------------------------------------

    def _assign_organizer(self, matches: Sequence[ScheduledMatch]) -> Dict[str, int]:
        config = self.config
        number_of_referees = config.number_of_referees
        if number_of_referees < 1:
            logger.warning(
                "number_of_referees=%s invalid, using %s", number_of_referees, DEFAULT_NUMBER_OF_REFEREES
            )
            number_of_referees = DEFAULT_NUMBER_OF_REFEREES
        max_consecutive = max(1, config.max_consecutive_matches)

        state = RefereePoolState(number_of_referees)
        # Pre-set referees count towards workload
        for match in matches:
            if match.id not in config.manual_assignments and match.referee in state.workload:
                state.record(match.referee, match.slot)

        to_assign = [
            m for m in matches if m.id not in config.manual_assignments and m.referee is None
        ]
        to_assign.sort(key=lambda m: (m.slot, m.field))

        assignments: Dict[str, int] = {}
        for match in to_assign:
            referee, blocked_reason = self._pick_referee(state, match.slot, max_consecutive)
            if blocked_reason:
                relaxation = RefereeRelaxation(match.id, referee, match.slot, blocked_reason)
                self.relaxations.append(relaxation)
                logger.warning("Referee constraint relaxed: %s", relaxation.describe())
            state.record(referee, match.slot)
            assignments[match.id] = referee

        logger.debug("Referee workload: %s", state.workload)
        return assignments

    @staticmethod
    def _pick_referee(state: RefereePoolState, slot: int, max_consecutive: int) -> Tuple[int, Optional[str]]:
        """
        Choose among the least-loaded referees only, so counts never drift
        apart by more than one. Prefer referees free in this slot and below
        the consecutive limit, then the longest rest, then the lowest number.
        """
        min_load = min(state.workload.values())
        candidates = [ref for ref, load in state.workload.items() if load == min_load]

        def rank(ref: int):
            same_slot = slot in state.slots[ref]
            over_limit = state.streak_before(ref, slot) >= max_consecutive
            last = state.last_slot(ref)
            return (same_slot, over_limit, last if last is not None else -1, ref)

        best = min(candidates, key=rank)
        if slot in state.slots[best]:
            return best, "already refereeing in this slot"
        if state.streak_before(best, slot) >= max_consecutive:
            return best, f"more than {max_consecutive} consecutive match(es)"
        return best, None

    # ------------------------------------------------------------------
    # Team referees
    # ------------------------------------------------------------------

    def _assign_teams(self, matches: Sequence[ScheduledMatch]) -> Dict[str, int]:
        numbers = team_number_map(self.teams)
        by_field: Dict[int, List[ScheduledMatch]] = {}
        for match in matches:
            by_field.setdefault(match.field, []).append(match)

        assignments: Dict[str, int] = {}
        for field_matches in by_field.values():
            ordered = sorted(field_matches, key=lambda m: m.slot)
            for previous, match in zip(ordered, ordered[1:]):
                number = numbers.get(previous.original_team_a) or numbers.get(previous.home_team)
                if number is None:
                    continue
                if (
                    match.is_final
                    and self.config.finals_referee_mode != "none"
                    and not is_valid_finals_referee(match, number, self.config, self.teams)
                ):
                    logger.debug("Team %s not eligible to referee %s", number, match.id)
                    continue
                assignments[match.id] = number
        return assignments


def team_number_map(teams: Sequence[TeamEntry]) -> Dict[str, int]:
    """Team id and team name -> 1-based team number (position in the team list)."""
    numbers: Dict[str, int] = {}
    for index, team in enumerate(teams):
        numbers.setdefault(team.id, index + 1)
        numbers.setdefault(team.name, index + 1)
    return numbers


def assign_referees(
    matches: Sequence[ScheduledMatch], teams: Sequence[TeamEntry], config: AnyRefereeConfig
) -> List[ScheduledMatch]:
    return RefereeAssigner(config, teams).assign(matches)


def _team_for_number(teams: Sequence[TeamEntry], referee_number: int) -> Optional[TeamEntry]:
    if 1 <= referee_number <= len(teams):
        return teams[referee_number - 1]
    return None


def is_valid_finals_referee(
    match: ScheduledMatch, referee_number: int, config: AnyRefereeConfig, teams: Sequence[TeamEntry]
) -> bool:
    """
    Whether a team referee may officiate a playoff match.

    Never valid without a finals referee mode. A team never referees its own
    match; in neutralTeams mode it must also come from a different group
    than both (resolved) participants.
    """
    if config.finals_referee_mode == "none":
        return False
    referee_team = _team_for_number(teams, referee_number)
    if referee_team is None:
        return False

    participants = {match.original_team_a, match.original_team_b, match.home_team, match.away_team}
    if referee_team.id in participants or referee_team.name in participants:
        return False

    if config.finals_referee_mode == "neutralTeams" and referee_team.group:
        for team in teams:
            if team.id in (match.original_team_a, match.original_team_b) and team.group == referee_team.group:
                return False
    return True


def get_referee_display_name(
    referee_number: Optional[int], config: Optional[AnyRefereeConfig], teams: Optional[Sequence[TeamEntry]] = None
) -> str:
    """Custom organizer name, team name in teams mode, otherwise the number."""
    if referee_number is None:
        return "-"
    if isinstance(config, OrganizerRefereeConfig) and referee_number in config.referee_names:
        return config.referee_names[referee_number]
    if isinstance(config, TeamRefereeConfig) and teams:
        team = _team_for_number(teams, referee_number)
        if team is not None:
            return team.name
    return str(referee_number)
