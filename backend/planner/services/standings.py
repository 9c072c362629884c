"""
Group standings from recorded results.

Order: points, goal difference, goals for, then head-to-head among the
tied teams (points, goal difference, goals for in their direct matches).
Remaining ties keep team list order.
"""

from functools import cmp_to_key
from typing import Dict, List, Optional, Sequence

from planner.models.schedule_types import ScheduledMatch, Standing
from planner.models.tournament_config import PointSystem, TeamEntry


def _build_lookup(teams: Sequence[TeamEntry]) -> Dict[str, str]:
    """Team id or name -> team id"""
    lookup: Dict[str, str] = {}
    for team in teams:
        lookup.setdefault(team.id, team.id)
        lookup.setdefault(team.name, team.id)
    return lookup


def _apply_result(home: Standing, away: Standing, score_home: int, score_away: int, points: PointSystem):
    home.played += 1
    away.played += 1
    home.goals_for += score_home
    home.goals_against += score_away
    away.goals_for += score_away
    away.goals_against += score_home

    if score_home > score_away:
        home.won += 1
        away.lost += 1
        home.points += points.win
        away.points += points.loss
    elif score_home < score_away:
        away.won += 1
        home.lost += 1
        away.points += points.win
        home.points += points.loss
    else:
        home.drawn += 1
        away.drawn += 1
        home.points += points.draw
        away.points += points.draw

    home.goal_difference = home.goals_for - home.goals_against
    away.goal_difference = away.goals_for - away.goals_against


def _head_to_head(team_a: str, team_b: str, results: List[ScheduledMatch], lookup: Dict[str, str], points: PointSystem) -> int:
    """> 0 if team_a ranks higher in direct matches, < 0 if team_b does"""
    pts = {team_a: 0, team_b: 0}
    goals = {team_a: 0, team_b: 0}
    conceded = {team_a: 0, team_b: 0}
    for match in results:
        a = lookup.get(match.original_team_a)
        b = lookup.get(match.original_team_b)
        if {a, b} != {team_a, team_b}:
            continue
        goals[a] += match.score_a
        conceded[a] += match.score_b
        goals[b] += match.score_b
        conceded[b] += match.score_a
        if match.score_a > match.score_b:
            pts[a] += points.win
            pts[b] += points.loss
        elif match.score_a < match.score_b:
            pts[b] += points.win
            pts[a] += points.loss
        else:
            pts[a] += points.draw
            pts[b] += points.draw

    for metric in (
        pts[team_a] - pts[team_b],
        (goals[team_a] - conceded[team_a]) - (goals[team_b] - conceded[team_b]),
        goals[team_a] - goals[team_b],
    ):
        if metric != 0:
            return metric
    return 0


def calculate_standings(
    teams: Sequence[TeamEntry],
    matches: Sequence[ScheduledMatch],
    point_system: Optional[PointSystem] = None,
    group: Optional[str] = None,
) -> List[Standing]:
    """
    Standings for one group (or all teams when group is None).

    Only group-stage matches with both scores count; skipped matches never do.
    """
    points = point_system or PointSystem()
    relevant_teams = [t for t in teams if group is None or t.group == group]
    lookup = _build_lookup(relevant_teams)
    table: Dict[str, Standing] = {t.id: Standing(team=t) for t in relevant_teams}

    results = [
        m
        for m in matches
        if not m.is_final
        and m.has_result
        and m.match_status != "skipped"
        and (group is None or m.group == group)
    ]
    counted: List[ScheduledMatch] = []
    for match in results:
        a = lookup.get(match.original_team_a)
        b = lookup.get(match.original_team_b)
        if a is None or b is None:
            continue
        _apply_result(table[a], table[b], match.score_a, match.score_b, points)
        counted.append(match)

    def compare(x: Standing, y: Standing) -> int:
        for metric in (
            y.points - x.points,
            y.goal_difference - x.goal_difference,
            y.goals_for - x.goals_for,
        ):
            if metric != 0:
                return metric
        return -_head_to_head(x.team.id, y.team.id, counted, lookup, points)

    return sorted(table.values(), key=cmp_to_key(compare))


def initial_standings(teams: Sequence[TeamEntry]) -> List[Standing]:
    return [Standing(team=t) for t in teams]
