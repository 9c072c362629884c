"""
Round-robin pairing generation (circle method).

Every team in a group meets every other team exactly once. For an odd team
count a BYE position is added; pairings touching the BYE are dropped and
never reach the scheduler.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from planner.models.tournament_config import TeamEntry

ALL_TEAMS_GROUP = "all"


@dataclass(frozen=True)
class Pairing:
    """Unordered team-vs-team fixture inside one group"""

    team_a: TeamEntry
    team_b: TeamEntry
    group: str
    round_index: int

    def team_ids(self) -> Tuple[str, str]:
        return (self.team_a.id, self.team_b.id)


def rr_round_count(team_count: int) -> int:
    """
    Number of rounds for a group of n teams.
    Even n: n-1 rounds. Odd n: n rounds (one team idle per round).
    """
    if team_count < 2:
        return 0
    if team_count % 2 == 0:
        return team_count - 1
    return team_count


def expected_pairing_count(team_count: int) -> int:
    """C(n, 2) = n*(n-1)/2"""
    if team_count < 2:
        return 0
    return (team_count * (team_count - 1)) // 2


def rr_pairings_by_round(team_count: int) -> List[Tuple[int, int, int, int]]:
    """
    Round-robin pairings. Returns list of (round_index, sequence_in_round, idx_a, idx_b).
    idx_a, idx_b are 0-based positions in the input order.

    Circle method: position 0 stays fixed, the last position moves to slot 1
    after every round. Position i plays position n2-1-i.
    """
    if team_count < 2:
        return []

    n2 = team_count + 1 if team_count % 2 == 1 else team_count
    half = n2 // 2
    bye_idx = team_count if team_count % 2 == 1 else -1

    result: List[Tuple[int, int, int, int]] = []
    positions = list(range(n2))

    for round_num in range(1, n2):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            seq += 1
            result.append((round_num, seq, a, b))
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return result


def generate_round_robin_pairings(teams: Sequence[TeamEntry], group: str = ALL_TEAMS_GROUP) -> List[Pairing]:
    """Single round robin for one group, in round order."""
    return [
        Pairing(team_a=teams[idx_a], team_b=teams[idx_b], group=group, round_index=round_index)
        for round_index, _, idx_a, idx_b in rr_pairings_by_round(len(teams))
    ]


def group_teams(teams: Sequence[TeamEntry], single_group: bool = False) -> Dict[str, List[TeamEntry]]:
    """
    Split teams into groups keyed by group label, in sorted label order.

    single_group=True (plain round robin) puts everyone in the synthetic "all" group.
    Teams without a group label are ignored in group mode.
    """
    if single_group:
        return {ALL_TEAMS_GROUP: list(teams)} if teams else {}

    grouped: Dict[str, List[TeamEntry]] = {}
    for label in sorted({t.group for t in teams if t.group}):
        grouped[label] = [t for t in teams if t.group == label]
    return grouped


def generate_group_pairings(groups: Dict[str, List[TeamEntry]]) -> List[Pairing]:
    """Flatten pairings of all groups, group by group."""
    pairings: List[Pairing] = []
    for label, teams in groups.items():
        pairings.extend(generate_round_robin_pairings(teams, label))
    return pairings
