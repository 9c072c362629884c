"""
Tests for preset-driven playoff bracket generation.
"""

import pytest

from planner.models.schedule_types import PlayoffMatch
from planner.models.tournament_config import FinalsConfig, FinalsPreset
from planner.services.playoff_bracket import (
    BracketBuilder,
    BracketIntegrityError,
    GroupSeed,
    OutcomeRef,
    build_bracket,
    effective_preset,
    final_type_for,
    generate_playoff_matches,
    get_expected_match_count,
    parse_placeholder,
    playoff_phase_for,
    preset_has_quarterfinals,
    preset_has_semifinals,
    validate_bracket,
)


def _by_id(matches):
    return {m.id: m for m in matches}


class TestTop4:
    def test_two_groups_cross_seeding(self):
        matches = generate_playoff_matches(2, FinalsConfig(preset="top-4"))
        by_id = _by_id(matches)

        assert [m.id for m in matches] == ["semi1", "semi2", "third-place", "final"]
        assert (by_id["semi1"].home, by_id["semi1"].away) == ("group-a-2nd", "group-b-1st")
        assert (by_id["semi2"].home, by_id["semi2"].away) == ("group-a-1st", "group-b-2nd")
        assert by_id["final"].depends_on == ["semi1", "semi2"]
        assert (by_id["final"].home, by_id["final"].away) == ("semi1-winner", "semi2-winner")
        assert (by_id["third-place"].home, by_id["third-place"].away) == ("semi1-loser", "semi2-loser")
        assert by_id["final"].rank == 1
        assert by_id["third-place"].rank == 3

    def test_labels_follow_locale(self):
        de = _by_id(generate_playoff_matches(2, FinalsConfig(preset="top-4")))
        en = _by_id(generate_playoff_matches(2, FinalsConfig(preset="top-4"), locale="en"))

        assert de["semi1"].label == "1. Halbfinale"
        assert de["final"].label == "Finale"
        assert en["semi2"].label == "Semifinal 2"
        assert en["third-place"].label == "3rd Place Match"


class TestLargerBrackets:
    def test_top8_with_four_groups(self):
        matches = generate_playoff_matches(4, FinalsConfig(preset="top-8"))
        by_id = _by_id(matches)

        assert len(matches) == 10
        assert (by_id["qf1"].home, by_id["qf1"].away) == ("group-a-1st", "group-d-2nd")
        assert by_id["semi1"].depends_on == ["qf1", "qf4"]
        assert (by_id["place56"].home, by_id["place56"].away) == ("qf1-loser", "qf2-loser")
        assert by_id["place78"].rank == (7, 8)

    def test_top16_with_eight_groups(self):
        matches = generate_playoff_matches(8, FinalsConfig(preset="top-16"))
        by_id = _by_id(matches)

        assert len(matches) == 16
        assert (by_id["r16-1"].home, by_id["r16-1"].away) == ("group-a-1st", "group-h-2nd")
        assert by_id["qf1"].depends_on == ["r16-1", "r16-8"]

    def test_expected_counts(self):
        assert get_expected_match_count("none", 2) == 0
        assert get_expected_match_count("final-only", 2) == 1
        assert get_expected_match_count("top-4", 2) == 4
        assert get_expected_match_count("top-8", 4) == 10
        assert get_expected_match_count("top-16", 8) == 16
        assert get_expected_match_count("all-places", 2) == 6

    def test_all_places_respects_group_sizes(self):
        full = generate_playoff_matches(2, FinalsConfig(preset="all-places"), {"A": 4, "B": 4})
        small = generate_playoff_matches(2, FinalsConfig(preset="all-places"), {"A": 3, "B": 4})

        assert {"place78-direct", "place56-direct"} <= {m.id for m in full}
        assert "place78-direct" not in {m.id for m in small}
        assert "place56-direct" in {m.id for m in small}
        # Final is played last and waits for every placement match
        assert full[-1].id == "final"
        assert set(full[-1].depends_on) == {"semi1", "semi2", "place78-direct", "place56-direct", "third-place"}


class TestFallbacks:
    @pytest.mark.parametrize(
        "preset, groups, expected",
        [
            ("top-16", 8, FinalsPreset.TOP_16),
            ("top-16", 4, FinalsPreset.TOP_8),
            ("top-16", 2, FinalsPreset.TOP_4),
            ("top-8", 3, FinalsPreset.TOP_4),
            ("all-places", 4, FinalsPreset.TOP_8),
            ("all-places", 3, FinalsPreset.TOP_4),
            ("final-only", 1, FinalsPreset.NONE),
            ("none", 4, FinalsPreset.NONE),
        ],
    )
    def test_effective_preset(self, preset, groups, expected):
        assert effective_preset(preset, groups) == expected

    def test_top8_with_two_groups_has_no_dangling_refs(self):
        matches = generate_playoff_matches(2, FinalsConfig(preset="top-8"))
        assert [m.id for m in matches] == ["semi1", "semi2", "third-place", "final"]
        validate_bracket(matches)

    def test_fewer_than_two_groups(self):
        assert generate_playoff_matches(1, FinalsConfig(preset="top-4")) == []

    def test_unknown_preset_degrades_to_none(self):
        config = FinalsConfig(preset="top-32")
        assert config.preset == FinalsPreset.NONE
        assert config.unknown_preset == "top-32"
        assert generate_playoff_matches(4, config) == []


class TestIntegrity:
    @pytest.mark.parametrize(
        "preset, groups",
        [("final-only", 2), ("top-4", 2), ("top-4", 3), ("top-8", 4), ("top-16", 8), ("all-places", 2)],
    )
    def test_generated_brackets_are_closed_and_acyclic(self, preset, groups):
        matches = generate_playoff_matches(groups, FinalsConfig(preset=preset))
        validate_bracket(matches)

        seen = set()
        for match in matches:
            # Earlier rounds come first
            assert set(match.depends_on) <= seen
            seen.add(match.id)

    def test_arena_dependencies_point_backwards(self):
        nodes = build_bracket(4, FinalsConfig(preset="top-8"))
        for index, node in enumerate(nodes):
            assert all(dep < index for dep in node.depends_on)

    def test_builder_rejects_forward_reference(self):
        builder = BracketBuilder()
        with pytest.raises(BracketIntegrityError):
            builder.winner("semi1")

    def test_builder_rejects_duplicate_id(self):
        builder = BracketBuilder()
        builder.add("final", "final", GroupSeed("A", 1), GroupSeed("B", 1))
        with pytest.raises(BracketIntegrityError):
            builder.add("final", "final", GroupSeed("A", 1), GroupSeed("B", 1))

    def test_dangling_reference_detected(self):
        matches = [PlayoffMatch(id="final", label="Final", home="semi1-winner", away="semi2-winner")]
        with pytest.raises(BracketIntegrityError):
            validate_bracket(matches)

    def test_cycle_detected(self):
        matches = [
            PlayoffMatch(id="x", label="X", home="y-winner", away="group-a-1st", depends_on=["y"]),
            PlayoffMatch(id="y", label="Y", home="x-winner", away="group-b-1st", depends_on=["x"]),
        ]
        with pytest.raises(BracketIntegrityError):
            validate_bracket(matches)


class TestPlaceholdersAndPhases:
    def test_parse_placeholder(self):
        assert parse_placeholder("group-a-1st") == GroupSeed("A", 1)
        assert parse_placeholder("group-c-3rd") == GroupSeed("C", 3)
        assert parse_placeholder("semi1-winner") == OutcomeRef("semi1", "winner")
        assert parse_placeholder("r16-3-loser") == OutcomeRef("r16-3", "loser")
        assert parse_placeholder("t1") is None

    def test_phase_mapping(self):
        assert playoff_phase_for("r16-4") == "roundOf16"
        assert playoff_phase_for("qf2") == "quarterfinal"
        assert playoff_phase_for("semi1") == "semifinal"
        assert playoff_phase_for("third-place") == "final"
        assert playoff_phase_for("place56-direct") == "final"

    def test_final_types(self):
        assert final_type_for("final") == "final"
        assert final_type_for("third-place") == "thirdPlace"
        assert final_type_for("place56") == "fifthSixth"
        assert final_type_for("place78-direct") == "seventhEighth"
        assert final_type_for("semi1") is None

    def test_preset_predicates(self):
        assert preset_has_semifinals("top-4")
        assert not preset_has_semifinals("final-only")
        assert preset_has_quarterfinals("top-8")
        assert not preset_has_quarterfinals("all-places")
