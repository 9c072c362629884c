"""
Tests for referee assignment (organizer pool, team referees, finals guard).
"""

from collections import Counter

import pytest

from planner.models.tournament_config import NoRefereeConfig, OrganizerRefereeConfig, TeamRefereeConfig
from planner.services.referee_assigner import (
    RefereeAssigner,
    assign_referees,
    get_referee_display_name,
    is_valid_finals_referee,
    team_number_map,
)
from tests.conftest import make_match, make_teams


def _grid(slots: int, fields: int):
    """One match per (slot, field) with distinct placeholder teams."""
    matches = []
    for slot in range(slots):
        for field in range(1, fields + 1):
            n = slot * fields + field
            matches.append(make_match(f"m{n}", f"x{n}", f"y{n}", slot=slot, field=field))
    return matches


class TestNoReferees:
    def test_passthrough(self):
        matches = _grid(2, 2)
        result = assign_referees(matches, [], NoRefereeConfig())
        assert [m.referee for m in result] == [None] * 4


class TestOrganizerPool:
    @pytest.mark.parametrize("max_consecutive", [1, 2])
    @pytest.mark.parametrize("slots, fields", [(1, 1), (3, 1), (4, 2), (5, 3), (7, 2)])
    @pytest.mark.parametrize("pool", [1, 2, 3, 4, 5])
    def test_workload_balanced(self, pool, slots, fields, max_consecutive):
        config = OrganizerRefereeConfig(number_of_referees=pool, max_consecutive_matches=max_consecutive)
        result = assign_referees(_grid(slots, fields), [], config)
        counts = Counter(m.referee for m in result)

        assert set(counts) <= set(range(1, pool + 1))
        workload = [counts.get(ref, 0) for ref in range(1, pool + 1)]
        assert sum(workload) == slots * fields
        assert max(workload) - min(workload) <= 1

    def test_no_double_booking_when_pool_is_large_enough(self):
        config = OrganizerRefereeConfig(number_of_referees=4, max_consecutive_matches=1)
        assigner = RefereeAssigner(config, [])
        result = assigner.assign(_grid(4, 2))

        assert assigner.relaxations == []
        by_slot = {}
        for match in result:
            by_slot.setdefault(match.slot, []).append(match.referee)
        for referees in by_slot.values():
            assert len(referees) == len(set(referees))
        assert [m.referee for m in result[:4]] == [1, 2, 3, 4]

    def test_consecutive_limit_relaxed_when_pool_too_small(self):
        config = OrganizerRefereeConfig(number_of_referees=2, max_consecutive_matches=1)
        assigner = RefereeAssigner(config, [])
        result = assigner.assign(_grid(3, 2))

        assert all(m.referee in (1, 2) for m in result)
        assert assigner.relaxations
        assert "consecutive" in assigner.relaxations[0].describe()

    def test_invalid_pool_size_uses_default(self):
        config = OrganizerRefereeConfig(number_of_referees=0)
        result = assign_referees(_grid(2, 1), [], config)
        assert {m.referee for m in result} <= {1, 2}

    def test_preset_referee_kept_and_counted(self):
        matches = _grid(2, 1)
        matches[0] = matches[0].model_copy(update={"referee": 1})
        result = assign_referees(matches, [], OrganizerRefereeConfig(number_of_referees=2))

        assert result[0].referee == 1
        assert result[1].referee == 2

    def test_manual_assignment_wins(self):
        config = OrganizerRefereeConfig(number_of_referees=2, manual_assignments={"m2": 9})
        result = assign_referees(_grid(2, 2), [], config)
        assert result[1].referee == 9

    def test_output_keeps_input_order(self):
        matches = list(reversed(_grid(3, 2)))
        result = assign_referees(matches, [], OrganizerRefereeConfig(number_of_referees=3))
        assert [m.id for m in result] == [m.id for m in matches]


class TestTeamReferees:
    def test_previous_home_team_referees_next_match(self):
        teams = make_teams(4)
        matches = [
            make_match("m1", "t1", "t2", slot=0),
            make_match("m2", "t3", "t4", slot=1),
            make_match("m3", "t1", "t3", slot=2),
        ]
        result = assign_referees(matches, teams, TeamRefereeConfig())

        assert [m.referee for m in result] == [None, 1, 3]

    def test_fields_are_independent(self):
        teams = make_teams(4)
        matches = [
            make_match("m1", "t1", "t2", slot=0, field=1),
            make_match("m2", "t3", "t4", slot=0, field=2),
            make_match("m3", "t2", "t4", slot=1, field=2),
        ]
        result = assign_referees(matches, teams, TeamRefereeConfig())
        assert [m.referee for m in result] == [None, None, 3]

    def test_team_number_map(self):
        numbers = team_number_map(make_teams(3))
        assert numbers["t2"] == 2
        assert numbers["Team 3"] == 3


class TestFinalsReferee:
    def test_disabled_without_finals_mode(self):
        teams = make_teams(4, ["A", "B"])
        final = make_match("final", "t1", "t2", phase="final")
        assert not is_valid_finals_referee(final, 3, TeamRefereeConfig(), teams)

    def test_participants_never_referee(self):
        teams = make_teams(4, ["A", "B"])
        final = make_match("final", "t1", "t2", phase="final")
        config = TeamRefereeConfig(finals_referee_mode="nonParticipatingTeams")

        assert not is_valid_finals_referee(final, 1, config, teams)
        assert is_valid_finals_referee(final, 3, config, teams)
        assert not is_valid_finals_referee(final, 99, config, teams)

    def test_neutral_teams_come_from_other_groups(self):
        # t1 A, t2 B, t3 C, t4 A, t5 B, t6 C
        teams = make_teams(6, ["A", "B", "C"])
        final = make_match("final", "t1", "t2", phase="final")
        config = TeamRefereeConfig(finals_referee_mode="neutralTeams")

        assert is_valid_finals_referee(final, 3, config, teams)
        assert not is_valid_finals_referee(final, 4, config, teams)


class TestDisplayNames:
    def test_organizer_names(self):
        config = OrganizerRefereeConfig(referee_names={1: "Anna"})
        assert get_referee_display_name(1, config) == "Anna"
        assert get_referee_display_name(2, config) == "2"

    def test_team_names(self):
        assert get_referee_display_name(2, TeamRefereeConfig(), make_teams(3)) == "Team 2"

    def test_unassigned(self):
        assert get_referee_display_name(None, NoRefereeConfig()) == "-"


class TestTeamRefereesInPlayoffs:
    def test_ineligible_team_skips_playoff_match(self):
        teams = make_teams(4, ["A", "B"])
        matches = [
            make_match("semi1", "t1", "t2", slot=0, phase="semifinal"),
            make_match("final", "t1", "t4", slot=1, phase="final"),
        ]
        config = TeamRefereeConfig(finals_referee_mode="nonParticipatingTeams")
        result = assign_referees(matches, teams, config)

        # t1 played semi1 (home) but also plays the final
        assert result[1].referee is None

    def test_eligible_team_referees_playoff_match(self):
        teams = make_teams(4, ["A", "B"])
        matches = [
            make_match("semi1", "t3", "t2", slot=0, phase="semifinal"),
            make_match("final", "t1", "t4", slot=1, phase="final"),
        ]
        config = TeamRefereeConfig(finals_referee_mode="nonParticipatingTeams")
        assert assign_referees(matches, teams, config)[1].referee == 3
