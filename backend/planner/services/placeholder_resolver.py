"""
Placeholder resolution for playoff matches.

Playoff matches keep their placeholder references (group-a-1st,
semi1-winner) in original_team_a / original_team_b. Resolution turns them
into real teams from the current results:

- group-X-Nth: once every group-stage match of group X has a result,
  the team at position N of the group standings
- bestSecond: once all groups are complete, the best runner-up across groups
- M-winner / M-loser: once match M has a result and both of its own
  participants resolve; a draw decides nothing
- TBD: never

Nothing is cached. Every call recomputes from the match list, so a
corrected group result changes the resolved pairing on the next call.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from planner.models.schedule_types import ScheduledMatch, Standing
from planner.models.tournament_config import GroupDisplay, PointSystem, TeamEntry
from planner.services.playoff_bracket import GroupSeed, OutcomeRef, parse_placeholder
from planner.services.standings import calculate_standings
from planner.utils.display_names import bracket_outcome_label, group_position_label

logger = logging.getLogger(__name__)

TBD = "TBD"
BEST_SECOND = "bestSecond"


def is_placeholder(ref: Optional[str]) -> bool:
    if not ref:
        return False
    return (
        ref == TBD
        or "group-" in ref
        or "-1st" in ref
        or "-2nd" in ref
        or "-3rd" in ref
        or "-4th" in ref
        or BEST_SECOND in ref
        or "-winner" in ref
        or "-loser" in ref
    )


def placeholder_display_name(
    ref: str,
    teams: Sequence[TeamEntry],
    groups: Optional[List[GroupDisplay]] = None,
    locale: str = "de",
) -> str:
    """Team name for team ids, localized label for placeholders."""
    for team in teams:
        if team.id == ref:
            return team.name
    parsed = parse_placeholder(ref)
    if isinstance(parsed, GroupSeed):
        return group_position_label(parsed.group, parsed.position, locale, groups)
    if isinstance(parsed, OutcomeRef):
        return bracket_outcome_label(parsed.match_id, parsed.outcome, locale)
    return ref


@dataclass
class PlayoffResolutionResult:
    matches: List[ScheduledMatch]
    updated_match_ids: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def was_resolved(self) -> bool:
        return len(self.updated_match_ids) > 0


class PlaceholderResolver:
    """Resolves references against one snapshot of the match list."""

    def __init__(
        self,
        matches: Sequence[ScheduledMatch],
        teams: Sequence[TeamEntry],
        point_system: Optional[PointSystem] = None,
    ):
        self.matches = list(matches)
        self.teams = list(teams)
        self.point_system = point_system or PointSystem()
        self._by_id: Dict[str, ScheduledMatch] = {m.id: m for m in self.matches}
        self._team_ids: Set[str] = {t.id for t in self.teams}

    def group_is_complete(self, group: str) -> bool:
        group_matches = [
            m for m in self.matches if not m.is_final and m.group and m.group.upper() == group.upper()
        ]
        if not group_matches:
            return False
        return all(m.has_result or m.match_status == "skipped" for m in group_matches)

    def group_standings(self, group: str) -> List[Standing]:
        label = self._group_label(group)
        return calculate_standings(self.teams, self.matches, self.point_system, label)

    def _group_label(self, group: str) -> str:
        for team in self.teams:
            if team.group and team.group.upper() == group.upper():
                return team.group
        return group

    def resolve(self, ref: str, _visiting: Optional[Set[str]] = None) -> Optional[str]:
        """Team id for a reference, or None when it is not decided yet."""
        if ref in self._team_ids:
            return ref
        if ref == TBD:
            return None
        if ref == BEST_SECOND:
            return self._resolve_best_second()

        parsed = parse_placeholder(ref)
        if isinstance(parsed, GroupSeed):
            if not self.group_is_complete(parsed.group):
                return None
            standings = self.group_standings(parsed.group)
            if len(standings) < parsed.position:
                return None
            return standings[parsed.position - 1].team.id

        if isinstance(parsed, OutcomeRef):
            visiting = _visiting or set()
            if parsed.match_id in visiting:
                logger.warning("Circular placeholder reference via %s", parsed.match_id)
                return None
            source = self._by_id.get(parsed.match_id)
            if source is None or not source.has_result or source.match_status == "skipped":
                return None
            if source.score_a == source.score_b:
                return None
            inner = visiting | {parsed.match_id}
            team_a = self.resolve(source.original_team_a, inner)
            team_b = self.resolve(source.original_team_b, inner)
            if team_a is None or team_b is None:
                return None
            a_won = source.score_a > source.score_b
            if parsed.outcome == "winner":
                return team_a if a_won else team_b
            return team_b if a_won else team_a

        return None

    def _resolve_best_second(self) -> Optional[str]:
        groups = sorted({t.group for t in self.teams if t.group})
        if not groups or not all(self.group_is_complete(g) for g in groups):
            return None
        runners_up = []
        for group in groups:
            standings = self.group_standings(group)
            if len(standings) >= 2:
                runners_up.append(standings[1])
        if not runners_up:
            return None
        best = max(runners_up, key=lambda s: (s.points, s.goal_difference, s.goals_for))
        return best.team.id


def resolve_playoff_pairings(
    matches: Sequence[ScheduledMatch],
    teams: Sequence[TeamEntry],
    point_system: Optional[PointSystem] = None,
    groups: Optional[List[GroupDisplay]] = None,
    locale: str = "de",
) -> PlayoffResolutionResult:
    """
    Recompute display names of all playoff participants.

    Placeholders stay in original_team_a / original_team_b; home_team /
    away_team show the resolved team name or the placeholder label.
    """
    resolver = PlaceholderResolver(matches, teams, point_system)
    names = {t.id: t.name for t in teams}

    updated: List[ScheduledMatch] = []
    updated_ids: List[str] = []
    for match in matches:
        if not match.is_final:
            updated.append(match)
            continue

        display = []
        for ref in (match.original_team_a, match.original_team_b):
            team_id = resolver.resolve(ref)
            display.append(names[team_id] if team_id else placeholder_display_name(ref, teams, groups, locale))

        if display[0] != match.home_team or display[1] != match.away_team:
            updated_ids.append(match.id)
            updated.append(match.model_copy(update={"home_team": display[0], "away_team": display[1]}))
        else:
            updated.append(match)

    if updated_ids:
        message = f"{len(updated_ids)} playoff match(es) updated"
        logger.info("Playoff pairings resolved: %s", ", ".join(updated_ids))
    else:
        message = "No playoff pairings changed"
    return PlayoffResolutionResult(matches=updated, updated_match_ids=updated_ids, message=message)
