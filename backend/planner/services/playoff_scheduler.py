"""
Playoff wave scheduling.

Places bracket matches onto (slot, field) cells in dependency waves:
a match becomes ready once every match in its depends_on has been placed
in an earlier wave. Within a wave, parallel-allowed matches fill the
fields slot by slot; sequential-only matches get a slot of their own on
field 1. Parallel matches go first, so the 3rd place match is played
before the final.
"""

import logging
from typing import List, Literal, Sequence, Set

from planner.models.schedule_types import PlayoffMatch
from planner.models.tournament_config import FinalsConfig
from planner.services.fair_slot_scheduler import MatchDraft
from planner.services.playoff_bracket import BracketIntegrityError, final_type_for, playoff_phase_for

logger = logging.getLogger(__name__)

ParallelMode = Literal["sequentialOnly", "parallelAllowed"]


def parallel_mode_for(match_id: str, finals_config: FinalsConfig) -> ParallelMode:
    """The final is always played alone; earlier rounds follow the parallel flags."""
    if match_id == "final":
        return "sequentialOnly"
    phase = playoff_phase_for(match_id)
    if phase == "semifinal" and not finals_config.parallel_semifinals:
        return "sequentialOnly"
    if phase == "quarterfinal" and not finals_config.parallel_quarterfinals:
        return "sequentialOnly"
    if phase == "roundOf16" and not finals_config.parallel_round_of_16:
        return "sequentialOnly"
    return "parallelAllowed"


def schedule_playoff_waves(
    matches: Sequence[PlayoffMatch],
    finals_config: FinalsConfig,
    number_of_fields: int,
    start_slot: int = 0,
) -> List[MatchDraft]:
    """
    Assign slots and fields to playoff matches, starting at start_slot.

    Output order is placement order. Raises BracketIntegrityError if a
    dependency can never be satisfied.
    """
    number_of_fields = max(1, number_of_fields)
    placed_ids: Set[str] = set()
    drafts: List[MatchDraft] = []
    pending = list(matches)
    slot = start_slot
    wave = 0

    while pending:
        ready = [m for m in pending if all(dep in placed_ids for dep in m.depends_on)]
        if not ready:
            raise BracketIntegrityError(
                "Unsatisfiable playoff dependencies: " + ", ".join(m.id for m in pending)
            )
        wave += 1

        parallel = [m for m in ready if parallel_mode_for(m.id, finals_config) == "parallelAllowed"]
        sequential = [m for m in ready if parallel_mode_for(m.id, finals_config) == "sequentialOnly"]

        field_number = 1
        for match in parallel:
            drafts.append(_draft(match, slot, field_number))
            field_number += 1
            if field_number > number_of_fields:
                field_number = 1
                slot += 1
        if field_number > 1:
            slot += 1

        for match in sequential:
            drafts.append(_draft(match, slot, 1))
            slot += 1

        logger.debug(
            "Playoff wave %d: %d parallel, %d sequential, next slot %d",
            wave,
            len(parallel),
            len(sequential),
            slot,
        )

        ready_ids = {m.id for m in ready}
        # Waves complete as a whole: matches of the same wave never depend on each other
        placed_ids |= ready_ids
        pending = [m for m in pending if m.id not in ready_ids]

    return drafts


def _draft(match: PlayoffMatch, slot: int, field_number: int) -> MatchDraft:
    return MatchDraft(
        id=match.id,
        team_a=match.home,
        team_b=match.away,
        field=field_number,
        slot=slot,
        round=slot + 1,
        phase=playoff_phase_for(match.id),
        final_type=final_type_for(match.id),
        label=match.label,
        depends_on=list(match.depends_on),
    )
