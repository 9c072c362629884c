"""
Tests for full schedule generation (group stage, playoffs, referees, hybrid mode).
"""

from datetime import datetime

import pytest

from planner.models.tournament_config import PersistedMatch, TournamentConfig
from planner.services.conflict_detector import detect_all_conflicts
from planner.services.schedule_generator import (
    ConfigurationError,
    TimingSettings,
    create_phases,
    generate_full_schedule,
)
from tests.conftest import make_teams


def _config(**overrides) -> TournamentConfig:
    data = {
        "id": "cup",
        "title": "Summer Cup",
        "teams": [t.model_dump() for t in make_teams(8, ["A", "B"])],
        "number_of_fields": 2,
        "group_system": "groupsAndFinals",
        "group_phase_game_duration": 10,
        "break_between_phases": 15,
        "finals_config": {"preset": "top-4"},
        "start_date": "2026-06-01",
        "start_time": "10:00",
    }
    data.update(overrides)
    return TournamentConfig.model_validate(data)


def _by_id(schedule):
    return {m.id: m for m in schedule.all_matches}


def _notice_codes(schedule):
    return [n.code for n in schedule.notices]


class TestRoundRobin:
    def test_all_pairings_scheduled(self):
        schedule = generate_full_schedule(
            _config(teams=[t.model_dump() for t in make_teams(5)], group_system="roundRobin", finals_config={})
        )

        assert len(schedule.all_matches) == 10
        assert [m.match_number for m in schedule.all_matches] == list(range(1, 11))
        assert all(m.group == "all" for m in schedule.all_matches)
        assert [p.name for p in schedule.phases] == ["groupStage"]
        assert schedule.phases[0].label == "Gruppenphase"

    def test_single_field_timing(self):
        schedule = generate_full_schedule(
            _config(
                teams=[t.model_dump() for t in make_teams(4)],
                group_system="roundRobin",
                number_of_fields=1,
                group_phase_break_duration=2,
                min_rest_slots=0,
            )
        )
        times = [m.time for m in schedule.all_matches]

        assert times == ["10:00", "10:12", "10:24", "10:36", "10:48", "11:00"]
        assert schedule.end_time == datetime(2026, 6, 1, 11, 10)
        assert schedule.total_duration == 70
        assert schedule.notices == []

    def test_rest_gaps_do_not_leave_idle_time(self):
        schedule = generate_full_schedule(
            _config(teams=[t.model_dump() for t in make_teams(3)], group_system="roundRobin", number_of_fields=1)
        )

        assert [m.time for m in schedule.all_matches] == ["10:00", "10:10", "10:20"]
        assert "rest_relaxed" not in _notice_codes(schedule)


class TestGroupsAndFinals:
    def test_group_stage_then_top4(self):
        schedule = generate_full_schedule(_config())
        by_id = _by_id(schedule)
        group_matches = [m for m in schedule.all_matches if m.phase == "groupStage"]

        assert len(group_matches) == 12
        assert max(m.end_time for m in group_matches) == datetime(2026, 6, 1, 11, 0)
        assert max(m.slot for m in group_matches) == 5

        # 15 min break after the group stage; slot clock skips two group slots
        assert by_id["semi1"].start_time == datetime(2026, 6, 1, 11, 15)
        assert (by_id["semi1"].slot, by_id["semi2"].slot) == (8, 8)
        assert by_id["third-place"].time == "11:25"
        assert by_id["final"].time == "11:35"
        assert by_id["final"].match_number == 16
        assert schedule.end_time == datetime(2026, 6, 1, 11, 45)

    def test_playoff_participants_are_placeholders(self):
        by_id = _by_id(generate_full_schedule(_config()))

        assert by_id["semi1"].original_team_a == "group-a-2nd"
        assert by_id["semi1"].home_team == "2. Gruppe A"
        assert by_id["final"].away_team == "Sieger HF 2"
        assert by_id["final"].depends_on == ["semi1", "semi2"]
        assert by_id["final"].final_type == "final"

    def test_english_labels(self):
        schedule = generate_full_schedule(_config(locale="en"))
        by_id = _by_id(schedule)

        assert by_id["semi1"].home_team == "2nd Group A"
        assert [p.label for p in schedule.phases] == ["Group Stage", "Semifinals", "Finals"]

    def test_no_conflicts_in_generated_schedule(self):
        schedule = generate_full_schedule(
            _config(referee_config={"mode": "organizer", "number_of_referees": 4})
        )
        assert detect_all_conflicts(schedule.all_matches, schedule.teams) == []

    def test_deterministic(self):
        first = generate_full_schedule(_config())
        second = generate_full_schedule(_config())
        assert first.model_dump() == second.model_dump()

    def test_round_robin_ignores_finals_preset(self):
        schedule = generate_full_schedule(_config(group_system="roundRobin"))
        assert all(m.phase == "groupStage" for m in schedule.all_matches)
        assert len(schedule.all_matches) == 28


class TestReferees:
    def test_organizer_referees_assigned(self):
        schedule = generate_full_schedule(
            _config(referee_config={"mode": "organizer", "number_of_referees": 3})
        )
        assert all(m.referee in (1, 2, 3) for m in schedule.all_matches)
        assert schedule.referee_config["mode"] == "organizer"

    def test_unknown_mode_means_no_referees(self):
        schedule = generate_full_schedule(_config(referee_config={"mode": "volunteers"}))
        assert all(m.referee is None for m in schedule.all_matches)

    def test_relaxation_is_reported(self):
        schedule = generate_full_schedule(
            _config(referee_config={"mode": "organizer", "number_of_referees": 1, "max_consecutive_matches": 1})
        )
        assert "referee_relaxed" in _notice_codes(schedule)
        assert all(n.kind == "constraint_relaxed" for n in schedule.notices)


class TestDegradedInput:
    def test_no_teams_is_fatal(self):
        with pytest.raises(ConfigurationError):
            generate_full_schedule(_config(teams=[]))

    def test_invalid_numbers_fall_back(self):
        schedule = generate_full_schedule(_config(number_of_fields=0, group_phase_game_duration=-5))
        codes = _notice_codes(schedule)

        assert "invalid_number_of_fields" in codes
        assert "invalid_game_duration" in codes
        assert schedule.number_of_fields == 1
        assert all(m.field == 1 for m in schedule.all_matches)
        assert schedule.all_matches[0].duration == 10

    def test_unknown_preset(self):
        schedule = generate_full_schedule(_config(finals_config={"preset": "top-32"}))

        assert "unknown_finals_preset" in _notice_codes(schedule)
        assert all(m.phase == "groupStage" for m in schedule.all_matches)

    def test_preset_downgrade(self):
        schedule = generate_full_schedule(_config(finals_config={"preset": "top-8"}))

        assert "preset_downgraded" in _notice_codes(schedule)
        assert {m.id for m in schedule.all_matches if m.phase != "groupStage"} == {
            "semi1",
            "semi2",
            "third-place",
            "final",
        }

    def test_unreadable_start_date(self):
        schedule = generate_full_schedule(_config(start_date="someday"))

        assert "invalid_start_date" in _notice_codes(schedule)
        assert schedule.all_matches[0].time == "10:00"

    def test_german_date_format(self):
        schedule = generate_full_schedule(_config(start_date="01.06.2026"))
        assert schedule.start_time == datetime(2026, 6, 1, 10, 0)
        assert schedule.notices == []


class TestHybridMode:
    def _persisted_group_stage(self, **score):
        schedule = generate_full_schedule(_config(finals_config={}))
        persisted = []
        for m in schedule.all_matches:
            persisted.append(
                PersistedMatch(
                    id=m.id,
                    team_a=m.original_team_a,
                    team_b=m.original_team_b,
                    field=m.field,
                    slot=m.slot,
                    group=m.group,
                    phase=m.phase,
                    match_number=m.match_number,
                    scheduled_time=m.start_time.isoformat(),
                    **score,
                )
            )
        return schedule, persisted

    def test_existing_matches_keep_identity_and_results(self):
        original, persisted = self._persisted_group_stage(score_a=1, score_b=0)
        persisted[0] = persisted[0].model_copy(update={"scheduled_time": "09:30", "referee": 5})

        schedule = generate_full_schedule(_config(finals_config={}, matches=[p.model_dump() for p in persisted]))
        first = schedule.all_matches[0]

        assert [m.id for m in schedule.all_matches] == [m.id for m in original.all_matches]
        assert first.time == "09:30"
        assert first.referee == 5
        assert first.score_a == 1
        assert schedule.all_matches[1].start_time == original.all_matches[1].start_time

    def test_missing_playoffs_are_generated(self):
        _, persisted = self._persisted_group_stage()
        schedule = generate_full_schedule(_config(matches=[p.model_dump() for p in persisted]))
        by_id = _by_id(schedule)

        assert len(schedule.all_matches) == 16
        assert by_id["semi1"].start_time == datetime(2026, 6, 1, 11, 15)
        assert by_id["semi1"].match_number == 13
        assert by_id["final"].slot == 10

    def test_existing_playoffs_are_not_duplicated(self):
        full = generate_full_schedule(_config())
        persisted = [
            PersistedMatch(
                id=m.id,
                team_a=m.original_team_a,
                team_b=m.original_team_b,
                field=m.field,
                slot=m.slot,
                group=m.group,
                phase=m.phase,
                final_type=m.final_type,
                match_number=m.match_number,
                scheduled_time=m.start_time.isoformat(),
                depends_on=m.depends_on,
            ).model_dump()
            for m in full.all_matches
        ]
        schedule = generate_full_schedule(_config(matches=persisted))

        assert [m.id for m in schedule.all_matches] == [m.id for m in full.all_matches]
        assert _by_id(schedule)["final"].final_type == "final"


class TestHelpers:
    def test_break_slots(self):
        timing = TimingSettings(
            number_of_fields=2,
            group_game_duration=10,
            group_break_duration=2,
            final_game_duration=10,
            final_break_duration=2,
            game_periods=1,
            halftime_break=0,
            break_between_phases=15,
            min_rest_slots=1,
        )
        assert timing.group_slot_duration == 12
        assert timing.break_slots() == 2

        timing.break_between_phases = 0
        assert timing.break_slots() == 0

    def test_create_phases_skips_empty_phases(self):
        schedule = generate_full_schedule(_config(finals_config={"preset": "final-only"}))
        phases = create_phases(schedule.all_matches, "en")

        assert [p.name for p in phases] == ["groupStage", "final"]
        assert phases[1].start_time == phases[1].matches[0].start_time
