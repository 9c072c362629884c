"""
Playoff bracket generation - preset driven.

Presets:
- none:        no playoff stage
- final-only:  1st A vs 1st B
- top-4:       semifinals + 3rd place + final
- top-8:       quarterfinals + semifinals + places 5-8 + 3rd place + final (4+ groups)
- top-16:      round of 16 + quarterfinals + semifinals + 3rd place + final (8+ groups)
- all-places:  top-4 plus direct placement matches between group 3rds/4ths (2 groups)

Presets that need more groups than available fall back to the next smaller
shape (top-16 -> top-8 -> top-4). effective_preset() reports what is built.

The bracket is built as an arena of PlayoffNode values. A node references
participants either by group seed or by the outcome of an earlier node
(by arena index), and depends_on only ever holds lower indices, so the
graph is acyclic by construction. String placeholders (group-a-1st,
semi1-winner) are produced by to_playoff_matches() for serialization.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Literal, Optional, Sequence, Tuple, Union

from planner.models.schedule_types import FinalType, PhaseName, PlayoffMatch
from planner.models.tournament_config import FinalsConfig, FinalsPreset
from planner.utils.display_names import ordinal_suffix

logger = logging.getLogger(__name__)

Outcome = Literal["winner", "loser"]


class BracketIntegrityError(Exception):
    """Raised when a playoff match list has dangling references or a cycle"""


# ============================================================================
# Arena types
# ============================================================================


@dataclass(frozen=True)
class GroupSeed:
    """Team finishing at `position` (1-based) in group `group`"""

    group: str
    position: int

    def to_placeholder(self) -> str:
        return f"group-{self.group.lower()}-{self.position}{ordinal_suffix(self.position)}"


@dataclass(frozen=True)
class MatchOutcome:
    """Winner or loser of the arena node at node_index"""

    node_index: int
    outcome: Outcome


Source = Union[GroupSeed, MatchOutcome]


@dataclass
class PlayoffNode:
    id: str
    label: str
    home: Source
    away: Source
    rank: Optional[Union[int, Tuple[int, int]]] = None
    depends_on: Tuple[int, ...] = ()


class BracketBuilder:
    """Appends nodes; references may only point at nodes already added."""

    def __init__(self, locale: str = "de"):
        self.locale = locale
        self.nodes: List[PlayoffNode] = []
        self._index_by_id: Dict[str, int] = {}

    def index_of(self, match_id: str) -> int:
        if match_id not in self._index_by_id:
            raise BracketIntegrityError(f"Unknown bracket match '{match_id}'")
        return self._index_by_id[match_id]

    def winner(self, match_id: str) -> MatchOutcome:
        return MatchOutcome(self.index_of(match_id), "winner")

    def loser(self, match_id: str) -> MatchOutcome:
        return MatchOutcome(self.index_of(match_id), "loser")

    def add(
        self,
        match_id: str,
        label_key: str,
        home: Source,
        away: Source,
        rank: Optional[Union[int, Tuple[int, int]]] = None,
        depends_on: Sequence[str] = (),
        number: Optional[int] = None,
    ) -> int:
        if match_id in self._index_by_id:
            raise BracketIntegrityError(f"Duplicate bracket match '{match_id}'")
        node = PlayoffNode(
            id=match_id,
            label=bracket_label(label_key, self.locale, number),
            home=home,
            away=away,
            rank=rank,
            depends_on=tuple(self.index_of(dep) for dep in depends_on),
        )
        self.nodes.append(node)
        self._index_by_id[match_id] = len(self.nodes) - 1
        return len(self.nodes) - 1


# ============================================================================
# Labels
# ============================================================================

_LABELS = {
    "de": {
        "final": "Finale",
        "third_place": "Spiel um Platz 3",
        "place5": "Spiel um Platz 5",
        "place7": "Spiel um Platz 7",
        "semi": "{n}. Halbfinale",
        "quarter": "Viertelfinale {n}",
        "r16": "Achtelfinale {n}",
    },
    "en": {
        "final": "Final",
        "third_place": "3rd Place Match",
        "place5": "5th Place Match",
        "place7": "7th Place Match",
        "semi": "Semifinal {n}",
        "quarter": "Quarterfinal {n}",
        "r16": "Round of 16 - Match {n}",
    },
}


def bracket_label(key: str, locale: str = "de", number: Optional[int] = None) -> str:
    labels = _LABELS.get(locale, _LABELS["de"])
    return labels[key].format(n=number)


# ============================================================================
# Preset shapes
# ============================================================================


def _seed(group_index: int, position: int) -> GroupSeed:
    return GroupSeed(chr(ord("A") + group_index), position)


def _add_semis(
    builder: BracketBuilder,
    semi_pairs: Sequence[Tuple[Source, Source]],
    semi_depends: Sequence[Sequence[str]] = ((), ()),
) -> None:
    for n, (home, away) in enumerate(semi_pairs, start=1):
        builder.add(f"semi{n}", "semi", home, away, depends_on=semi_depends[n - 1], number=n)


def _add_third_place_and_final(builder: BracketBuilder) -> None:
    builder.add(
        "third-place",
        "third_place",
        builder.loser("semi1"),
        builder.loser("semi2"),
        rank=3,
        depends_on=("semi1", "semi2"),
    )
    builder.add(
        "final",
        "final",
        builder.winner("semi1"),
        builder.winner("semi2"),
        rank=1,
        depends_on=("semi1", "semi2"),
    )


def _build_final_only(builder: BracketBuilder, groups: int, group_sizes: Optional[Dict[str, int]]) -> None:
    builder.add("final", "final", _seed(0, 1), _seed(1, 1), rank=1)


def _build_top4(builder: BracketBuilder, groups: int, group_sizes: Optional[Dict[str, int]]) -> None:
    if groups == 2:
        # Cross seeding: 2nd A vs 1st B, 1st A vs 2nd B
        pairs = [(_seed(0, 2), _seed(1, 1)), (_seed(0, 1), _seed(1, 2))]
    else:
        pairs = [(_seed(0, 1), _seed(1, 2)), (_seed(1, 1), _seed(0, 2))]
    _add_semis(builder, pairs)
    _add_third_place_and_final(builder)


# Quarterfinal seeding for 4+ groups: A1-D2, B1-C2, C1-B2, D1-A2
_QUARTER_SEEDING = [((0, 1), (3, 2)), ((1, 1), (2, 2)), ((2, 1), (1, 2)), ((3, 1), (0, 2))]


def _build_top8(builder: BracketBuilder, groups: int, group_sizes: Optional[Dict[str, int]]) -> None:
    for n, ((ga, pa), (gb, pb)) in enumerate(_QUARTER_SEEDING, start=1):
        builder.add(f"qf{n}", "quarter", _seed(ga, pa), _seed(gb, pb), number=n)

    _add_semis(
        builder,
        [(builder.winner("qf1"), builder.winner("qf4")), (builder.winner("qf2"), builder.winner("qf3"))],
        semi_depends=(("qf1", "qf4"), ("qf2", "qf3")),
    )
    builder.add(
        "place56", "place5", builder.loser("qf1"), builder.loser("qf2"), rank=(5, 6), depends_on=("qf1", "qf2")
    )
    builder.add(
        "place78", "place7", builder.loser("qf3"), builder.loser("qf4"), rank=(7, 8), depends_on=("qf3", "qf4")
    )
    _add_third_place_and_final(builder)


def _build_top16(builder: BracketBuilder, groups: int, group_sizes: Optional[Dict[str, int]]) -> None:
    # Mirror seeding: 1st of group i vs 2nd of group (9 - i)
    for i in range(8):
        builder.add(f"r16-{i + 1}", "r16", _seed(i, 1), _seed(7 - i, 2), number=i + 1)

    for n in range(1, 5):
        left, right = f"r16-{n}", f"r16-{9 - n}"
        builder.add(
            f"qf{n}",
            "quarter",
            builder.winner(left),
            builder.winner(right),
            depends_on=(left, right),
            number=n,
        )

    _add_semis(
        builder,
        [(builder.winner("qf1"), builder.winner("qf4")), (builder.winner("qf2"), builder.winner("qf3"))],
        semi_depends=(("qf1", "qf4"), ("qf2", "qf3")),
    )
    _add_third_place_and_final(builder)


def _min_group_size(group_sizes: Optional[Dict[str, int]]) -> int:
    if not group_sizes:
        return 4
    return min(group_sizes.get("A", 2), group_sizes.get("B", 2))


def _build_all_places(builder: BracketBuilder, groups: int, group_sizes: Optional[Dict[str, int]]) -> None:
    """Two groups: semis, direct 7th/5th place games, 3rd place, final last."""
    min_size = _min_group_size(group_sizes)
    _add_semis(builder, [(_seed(0, 2), _seed(1, 1)), (_seed(0, 1), _seed(1, 2))])

    final_depends = ["semi1", "semi2"]
    if min_size >= 4:
        builder.add("place78-direct", "place7", _seed(0, 4), _seed(1, 4), rank=(7, 8), depends_on=("semi1", "semi2"))
        final_depends.append("place78-direct")
    if min_size >= 3:
        builder.add("place56-direct", "place5", _seed(0, 3), _seed(1, 3), rank=(5, 6), depends_on=("semi1", "semi2"))
        final_depends.append("place56-direct")

    builder.add(
        "third-place",
        "third_place",
        builder.loser("semi1"),
        builder.loser("semi2"),
        rank=3,
        depends_on=("semi1", "semi2"),
    )
    final_depends.append("third-place")
    builder.add("final", "final", builder.winner("semi1"), builder.winner("semi2"), rank=1, depends_on=final_depends)


_PRESET_BUILDERS: Dict[str, Callable[[BracketBuilder, int, Optional[Dict[str, int]]], None]] = {
    FinalsPreset.FINAL_ONLY.value: _build_final_only,
    FinalsPreset.TOP_4.value: _build_top4,
    FinalsPreset.TOP_8.value: _build_top8,
    FinalsPreset.TOP_16.value: _build_top16,
    FinalsPreset.ALL_PLACES.value: _build_all_places,
}


def effective_preset(preset: Union[FinalsPreset, str], number_of_groups: int) -> FinalsPreset:
    """
    The bracket shape actually built for a preset and group count.

    top-16 needs 8 groups, top-8 needs 4; otherwise the next smaller
    shape is used. all-places is its own shape only for exactly 2 groups.
    """
    preset = FinalsPreset(preset)
    if preset == FinalsPreset.NONE or number_of_groups < 2:
        return FinalsPreset.NONE
    if preset == FinalsPreset.TOP_16 and number_of_groups < 8:
        preset = FinalsPreset.TOP_8
    if preset == FinalsPreset.TOP_8 and number_of_groups < 4:
        preset = FinalsPreset.TOP_4
    if preset == FinalsPreset.ALL_PLACES and number_of_groups != 2:
        preset = FinalsPreset.TOP_8 if number_of_groups >= 4 else FinalsPreset.TOP_4
    return preset


def build_bracket(
    number_of_groups: int,
    finals_config: FinalsConfig,
    group_sizes: Optional[Dict[str, int]] = None,
    locale: str = "de",
) -> List[PlayoffNode]:
    """Typed arena form of the bracket for the given preset."""
    shape = effective_preset(finals_config.preset, number_of_groups)
    if shape == FinalsPreset.NONE:
        return []
    if shape != FinalsPreset(finals_config.preset):
        logger.info(
            "Finals preset %s with %d groups builds %s bracket",
            FinalsPreset(finals_config.preset).value,
            number_of_groups,
            shape.value,
        )
    builder = BracketBuilder(locale)
    _PRESET_BUILDERS[shape.value](builder, number_of_groups, group_sizes)
    return builder.nodes


def to_playoff_matches(nodes: Sequence[PlayoffNode]) -> List[PlayoffMatch]:
    """Serialize arena nodes to string placeholders and id dependencies."""

    def placeholder(source: Source) -> str:
        if isinstance(source, GroupSeed):
            return source.to_placeholder()
        return f"{nodes[source.node_index].id}-{source.outcome}"

    return [
        PlayoffMatch(
            id=node.id,
            label=node.label,
            home=placeholder(node.home),
            away=placeholder(node.away),
            rank=node.rank,
            depends_on=[nodes[i].id for i in node.depends_on],
        )
        for node in nodes
    ]


def generate_playoff_matches(
    number_of_groups: int,
    finals_config: FinalsConfig,
    group_sizes: Optional[Dict[str, int]] = None,
    locale: str = "de",
) -> List[PlayoffMatch]:
    """
    Playoff matches for a preset, in bracket order (earlier rounds first).

    Returns [] for preset none or fewer than 2 groups.
    """
    return to_playoff_matches(build_bracket(number_of_groups, finals_config, group_sizes, locale))


def get_expected_match_count(preset: Union[FinalsPreset, str], number_of_groups: int) -> int:
    return len(generate_playoff_matches(number_of_groups, FinalsConfig(preset=preset)))


def preset_has_semifinals(preset: Union[FinalsPreset, str]) -> bool:
    return FinalsPreset(preset) in (FinalsPreset.TOP_4, FinalsPreset.TOP_8, FinalsPreset.TOP_16, FinalsPreset.ALL_PLACES)


def preset_has_quarterfinals(preset: Union[FinalsPreset, str]) -> bool:
    return FinalsPreset(preset) in (FinalsPreset.TOP_8, FinalsPreset.TOP_16)


# ============================================================================
# Placeholders and validation
# ============================================================================

_GROUP_PLACEHOLDER_RE = re.compile(r"^group-([a-z])-(\d+)(?:st|nd|rd|th)$", re.IGNORECASE)
_OUTCOME_PLACEHOLDER_RE = re.compile(r"^(.+)-(winner|loser)$")


@dataclass(frozen=True)
class OutcomeRef:
    """Parsed `<match_id>-winner` / `<match_id>-loser` placeholder"""

    match_id: str
    outcome: Outcome


def parse_placeholder(ref: str) -> Optional[Union[GroupSeed, OutcomeRef]]:
    """Parse a serialized placeholder. Returns None for team ids and unknown forms."""
    m = _GROUP_PLACEHOLDER_RE.match(ref)
    if m:
        return GroupSeed(m.group(1).upper(), int(m.group(2)))
    m = _OUTCOME_PLACEHOLDER_RE.match(ref)
    if m:
        return OutcomeRef(m.group(1), m.group(2))  # type: ignore[arg-type]
    return None


def validate_bracket(matches: Sequence[PlayoffMatch]) -> None:
    """
    Check referential closure and acyclicity of a serialized bracket.

    Raises BracketIntegrityError on duplicate ids, dangling depends_on or
    outcome references, or a dependency cycle.
    """
    ids = [m.id for m in matches]
    known = set(ids)
    if len(known) != len(ids):
        raise BracketIntegrityError("Duplicate playoff match ids")

    edges: Dict[str, List[str]] = {}
    for match in matches:
        deps = list(match.depends_on)
        for ref in (match.home, match.away):
            parsed = parse_placeholder(ref)
            if isinstance(parsed, OutcomeRef):
                if parsed.match_id not in known:
                    raise BracketIntegrityError(f"{match.id}: reference '{ref}' points to unknown match")
                if parsed.match_id not in deps:
                    deps.append(parsed.match_id)
        for dep in match.depends_on:
            if dep not in known:
                raise BracketIntegrityError(f"{match.id}: depends on unknown match '{dep}'")
        edges[match.id] = deps

    # Kahn's algorithm
    indegree = {mid: len(deps) for mid, deps in edges.items()}
    dependents: Dict[str, List[str]] = {mid: [] for mid in ids}
    for mid, deps in edges.items():
        for dep in deps:
            dependents[dep].append(mid)
    ready = [mid for mid in ids if indegree[mid] == 0]
    visited = 0
    while ready:
        current = ready.pop()
        visited += 1
        for nxt in dependents[current]:
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                ready.append(nxt)
    if visited != len(ids):
        raise BracketIntegrityError("Playoff dependency graph contains a cycle")


# ============================================================================
# Phase mapping
# ============================================================================


def playoff_phase_for(match_id: str) -> PhaseName:
    """r16 -> roundOf16, qf -> quarterfinal, semi -> semifinal, anything else -> final."""
    if "r16" in match_id:
        return "roundOf16"
    if "qf" in match_id:
        return "quarterfinal"
    if "semi" in match_id:
        return "semifinal"
    return "final"


def final_type_for(match_id: str) -> Optional[FinalType]:
    if match_id == "final":
        return "final"
    if match_id == "third-place":
        return "thirdPlace"
    if match_id.startswith("place56"):
        return "fifthSixth"
    if match_id.startswith("place78"):
        return "seventhEighth"
    return None
