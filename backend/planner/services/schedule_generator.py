"""
Schedule Generator - full tournament schedule from one configuration value

Pipeline:
1. Group pairings (circle method) per group, or one "all" group for round robin
2. FairSlotScheduler assigns slots/fields; schedule_matches binds times
3. Playoff bracket for the finals preset (groupsAndFinals only)
4. Playoff waves continue the slot clock after the inter-phase break
5. Referee assignment
6. Phases, standings and notices

Hybrid mode: when the configuration carries persisted matches, their ids,
slots, times and results are kept. Missing playoffs are generated and
appended after the last group slot if the finals preset asks for them.

Invalid numbers never fail generation: they are replaced by defaults and
reported as degraded_input notices. Only an empty team list is fatal.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from planner.models.schedule_types import (
    FINAL_TYPES,
    PHASE_LABELS,
    PHASE_ORDER,
    GeneratedSchedule,
    ScheduledMatch,
    ScheduleNotice,
    SchedulePhase,
)
from planner.models.tournament_config import FinalsPreset, PersistedMatch, TournamentConfig
from planner.services.fair_slot_scheduler import (
    DEFAULT_GAME_DURATION,
    DEFAULT_NUMBER_OF_FIELDS,
    FairSlotScheduler,
    drafts_from_slotted,
    schedule_matches,
)
from planner.services.pairing import generate_group_pairings, group_teams
from planner.services.placeholder_resolver import placeholder_display_name
from planner.services.playoff_bracket import (
    effective_preset,
    final_type_for,
    generate_playoff_matches,
    playoff_phase_for,
)
from planner.services.playoff_scheduler import schedule_playoff_waves
from planner.services.referee_assigner import RefereeAssigner
from planner.services.standings import initial_standings
from planner.utils.schedule_time import (
    add_minutes,
    calculate_total_match_duration,
    format_time,
    minutes_between,
    parse_start_time,
)

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Configuration cannot produce any schedule (e.g. no teams)"""


@dataclass
class TimingSettings:
    """Validated timing values used by one generation run"""

    number_of_fields: int
    group_game_duration: int
    group_break_duration: int
    final_game_duration: int
    final_break_duration: int
    game_periods: int
    halftime_break: int
    break_between_phases: int
    min_rest_slots: int

    @property
    def group_match_duration(self) -> int:
        return calculate_total_match_duration(self.group_game_duration, self.game_periods, self.halftime_break)

    @property
    def final_match_duration(self) -> int:
        return calculate_total_match_duration(self.final_game_duration, self.game_periods, self.halftime_break)

    @property
    def group_slot_duration(self) -> int:
        return self.group_match_duration + self.group_break_duration

    def break_slots(self) -> int:
        """Whole group slots covered by the inter-phase break."""
        if self.break_between_phases <= 0:
            return 0
        return math.ceil(self.break_between_phases / self.group_slot_duration)


class _NoticeLog:
    def __init__(self):
        self.notices: List[ScheduleNotice] = []

    def degraded(self, code: str, message: str):
        logger.warning("Degraded input (%s): %s", code, message)
        self.notices.append(ScheduleNotice(kind="degraded_input", code=code, message=message))

    def relaxed(self, code: str, message: str):
        self.notices.append(ScheduleNotice(kind="constraint_relaxed", code=code, message=message))


def _validated_timing(config: TournamentConfig, log: _NoticeLog) -> TimingSettings:
    fields = config.number_of_fields
    if fields < 1:
        log.degraded("invalid_number_of_fields", f"number_of_fields={fields}, using {DEFAULT_NUMBER_OF_FIELDS}")
        fields = DEFAULT_NUMBER_OF_FIELDS

    group_game = config.group_phase_game_duration
    if group_game <= 0:
        log.degraded("invalid_game_duration", f"group_phase_game_duration={group_game}, using {DEFAULT_GAME_DURATION}")
        group_game = DEFAULT_GAME_DURATION

    final_game = config.final_round_game_duration
    if final_game is None:
        final_game = group_game
    elif final_game <= 0:
        log.degraded("invalid_final_game_duration", f"final_round_game_duration={final_game}, using {group_game}")
        final_game = group_game

    group_break = config.group_phase_break_duration
    if group_break < 0:
        log.degraded("invalid_break_duration", f"group_phase_break_duration={group_break}, using 0")
        group_break = 0

    final_break = config.final_round_break_duration
    if final_break is None:
        final_break = group_break
    elif final_break < 0:
        log.degraded("invalid_final_break_duration", f"final_round_break_duration={final_break}, using {group_break}")
        final_break = group_break

    periods = config.game_periods
    if periods < 1:
        log.degraded("invalid_game_periods", f"game_periods={periods}, using 1")
        periods = 1

    halftime = config.halftime_break
    if halftime < 0:
        log.degraded("invalid_halftime_break", f"halftime_break={halftime}, using 0")
        halftime = 0

    break_between = config.break_between_phases
    if break_between < 0:
        log.degraded("invalid_break_between_phases", f"break_between_phases={break_between}, using 0")
        break_between = 0

    min_rest = config.min_rest_slots
    if min_rest < 0:
        log.degraded("invalid_min_rest_slots", f"min_rest_slots={min_rest}, using 0")
        min_rest = 0

    return TimingSettings(
        number_of_fields=fields,
        group_game_duration=group_game,
        group_break_duration=group_break,
        final_game_duration=final_game,
        final_break_duration=final_break,
        game_periods=periods,
        halftime_break=halftime,
        break_between_phases=break_between,
        min_rest_slots=min_rest,
    )


def _name_resolver(config: TournamentConfig) -> Callable[[str], str]:
    def resolve(ref: str) -> str:
        return placeholder_display_name(ref, config.teams, config.groups, config.locale)

    return resolve


def _playoffs_requested(config: TournamentConfig) -> bool:
    return config.group_system == "groupsAndFinals" and config.finals_config.preset != FinalsPreset.NONE


def _group_count(config: TournamentConfig) -> int:
    """Distinct groups among the teams; the configured count when no team has a group."""
    labels = {t.group for t in config.teams if t.group}
    return len(labels) if labels else config.number_of_groups


# ============================================================================
# Stages
# ============================================================================


def _schedule_group_stage(
    config: TournamentConfig, timing: TimingSettings, start: datetime, log: _NoticeLog
) -> List[ScheduledMatch]:
    groups = group_teams(config.teams, single_group=config.group_system == "roundRobin")
    pairings = generate_group_pairings(groups)

    scheduler = FairSlotScheduler(timing.number_of_fields, timing.min_rest_slots)
    slotted = scheduler.schedule(pairings)
    for relaxation in scheduler.relaxations:
        log.relaxed("rest_relaxed", relaxation.describe())

    return schedule_matches(
        drafts_from_slotted(slotted),
        start,
        timing.group_game_duration,
        timing.group_break_duration,
        timing.game_periods,
        timing.halftime_break,
        start_match_number=1,
        resolve_name=_name_resolver(config),
    )


def _schedule_finals(
    config: TournamentConfig,
    timing: TimingSettings,
    group_matches: Sequence[ScheduledMatch],
    fallback_start: datetime,
    log: _NoticeLog,
) -> List[ScheduledMatch]:
    number_of_groups = _group_count(config)
    preset = FinalsPreset(config.finals_config.preset)
    shape = effective_preset(preset, number_of_groups)
    if shape != preset:
        log.degraded(
            "preset_downgraded",
            f"finals preset {preset.value} with {number_of_groups} group(s) builds {shape.value}",
        )
    if shape == FinalsPreset.NONE:
        return []

    group_sizes: Dict[str, int] = {}
    for team in config.teams:
        if team.group:
            group_sizes[team.group.upper()] = group_sizes.get(team.group.upper(), 0) + 1

    playoff_matches = generate_playoff_matches(
        number_of_groups, config.finals_config, group_sizes or None, config.locale
    )

    last_group_slot = max((m.slot for m in group_matches), default=-1)
    start_slot = last_group_slot + 1 + timing.break_slots()
    drafts = schedule_playoff_waves(playoff_matches, config.finals_config, timing.number_of_fields, start_slot)

    group_end = max((m.end_time for m in group_matches), default=fallback_start)
    next_number = max((m.match_number for m in group_matches), default=0) + 1

    return schedule_matches(
        drafts,
        add_minutes(group_end, timing.break_between_phases),
        timing.final_game_duration,
        timing.final_break_duration,
        timing.game_periods,
        timing.halftime_break,
        start_match_number=next_number,
        resolve_name=_name_resolver(config),
    )


def _parse_persisted_time(value: Optional[str], start: datetime) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
        return parsed.replace(tzinfo=None)
    except ValueError:
        pass
    if ":" in value and len(value) <= 5:
        hours, minutes = value.split(":")
        if hours.isdigit() and minutes.isdigit():
            return start.replace(hour=int(hours) % 24, minute=int(minutes) % 60)
    return None


def _from_persisted(
    match: PersistedMatch,
    index: int,
    start: datetime,
    timing: TimingSettings,
    resolve: Callable[[str], str],
    log: _NoticeLog,
) -> ScheduledMatch:
    is_final = match.is_final or (match.phase not in (None, "groupStage"))
    phase = match.phase if match.phase in PHASE_ORDER else None
    if phase is None:
        phase = playoff_phase_for(match.id) if is_final else "groupStage"

    match_start = _parse_persisted_time(match.scheduled_time, start)
    if match_start is None:
        if match.scheduled_time:
            log.degraded("invalid_match_time", f"match {match.id}: unreadable time {match.scheduled_time!r}")
        match_start = start
    duration = timing.final_match_duration if is_final else timing.group_match_duration
    final_type = match.final_type if match.final_type in FINAL_TYPES else final_type_for(match.id)

    if match.slot is not None:
        slot = match.slot
    elif match.round is not None:
        slot = match.round - 1
    else:
        slot = index

    return ScheduledMatch(
        id=match.id,
        match_number=match.match_number or index + 1,
        time=format_time(match_start),
        field=match.field,
        slot=slot,
        home_team=resolve(match.team_a),
        away_team=resolve(match.team_b),
        original_team_a=match.team_a,
        original_team_b=match.team_b,
        group=match.group,
        phase=phase,
        final_type=final_type if is_final else None,
        label=match.label,
        start_time=match_start,
        end_time=add_minutes(match_start, duration),
        duration=duration,
        depends_on=list(match.depends_on),
        referee=match.referee,
        score_a=match.score_a,
        score_b=match.score_b,
        match_status=match.match_status,
    )


def _hybrid_matches(
    config: TournamentConfig, timing: TimingSettings, start: datetime, log: _NoticeLog
) -> List[ScheduledMatch]:
    resolve = _name_resolver(config)
    mapped = [_from_persisted(m, i, start, timing, resolve, log) for i, m in enumerate(config.matches)]
    group_matches = [m for m in mapped if not m.is_final]
    has_finals = len(group_matches) != len(mapped)

    if _playoffs_requested(config) and not has_finals and group_matches:
        logger.info("Persisted schedule has no playoff matches, generating them")
        return mapped + _schedule_finals(config, timing, group_matches, start, log)
    return mapped


# ============================================================================
# Phases
# ============================================================================


def create_phases(matches: Sequence[ScheduledMatch], locale: str = "de") -> List[SchedulePhase]:
    """One phase per non-empty phase name, in tournament order."""
    labels = PHASE_LABELS.get(locale, PHASE_LABELS["de"])
    phases: List[SchedulePhase] = []
    for name in PHASE_ORDER:
        phase_matches = [m for m in matches if m.phase == name]
        if not phase_matches:
            continue
        phases.append(
            SchedulePhase(
                name=name,
                label=labels[name],
                matches=phase_matches,
                start_time=min(m.start_time for m in phase_matches),
                end_time=max(m.end_time for m in phase_matches),
            )
        )
    return phases


# ============================================================================
# Main entry point
# ============================================================================


def _tournament_metadata(config: TournamentConfig) -> Dict:
    return {
        "id": config.id,
        "title": config.title,
        "date": config.start_date,
        "location": config.location,
        "group_system": config.group_system,
        "number_of_groups": config.number_of_groups,
        "groups": [g.model_dump() for g in config.groups],
    }


def generate_full_schedule(config: TournamentConfig) -> GeneratedSchedule:
    """
    Build the complete schedule for a tournament configuration.

    Deterministic: the same configuration always yields the same ids,
    ordering and times.

    Raises:
        ConfigurationError: the configuration has no teams
    """
    if not config.teams:
        raise ConfigurationError("Tournament must have at least one team")

    log = _NoticeLog()
    start, date_degraded = parse_start_time(config.start_date, config.start_time)
    if date_degraded and config.start_date:
        log.degraded("invalid_start_date", f"start date {config.start_date!r} not recognized, using today")
    if config.finals_config.unknown_preset:
        log.degraded("unknown_finals_preset", f"finals preset {config.finals_config.unknown_preset!r} replaced by none")
    timing = _validated_timing(config, log)

    if config.matches:
        all_matches = _hybrid_matches(config, timing, start, log)
    else:
        group_matches = _schedule_group_stage(config, timing, start, log)
        finals = _schedule_finals(config, timing, group_matches, start, log) if _playoffs_requested(config) else []
        all_matches = group_matches + finals

    assigner = RefereeAssigner(config.referee_config, config.teams)
    all_matches = assigner.assign(all_matches)
    for relaxation in assigner.relaxations:
        log.relaxed("referee_relaxed", relaxation.describe())

    end = max((m.end_time for m in all_matches), default=start)
    schedule = GeneratedSchedule(
        tournament=_tournament_metadata(config),
        all_matches=all_matches,
        phases=create_phases(all_matches, config.locale),
        start_time=start,
        end_time=end,
        total_duration=round(minutes_between(start, end)),
        number_of_fields=timing.number_of_fields,
        teams=list(config.teams),
        initial_standings=initial_standings(config.teams),
        referee_config=config.referee_config.model_dump(),
        notices=log.notices,
    )

    logger.info(
        "Generated schedule for %s: %d matches in %d phase(s), %d notice(s)",
        config.id,
        len(all_matches),
        len(schedule.phases),
        len(schedule.notices),
    )
    return schedule
