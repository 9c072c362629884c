"""
Display names for groups, placeholders and referees.

Localized labels for placeholder references:
- group-a-1st  -> "1. Gruppe A" (de) / "1st Group A" (en)
- semi1-winner -> "Sieger HF 1" (de) / "Winner SF 1" (en)
"""

from typing import Dict, List, Optional

from planner.models.tournament_config import GroupDisplay

DEFAULT_GROUP_WORD = {"de": "Gruppe", "en": "Group"}

OUTCOME_WORD = {
    "de": {"winner": "Sieger", "loser": "Verlierer"},
    "en": {"winner": "Winner", "loser": "Loser"},
}

# Round prefix -> short round label, per locale
ROUND_ABBREVIATION = {
    "de": {"r16": "AF", "qf": "VF", "semi": "HF"},
    "en": {"r16": "R16", "qf": "QF", "semi": "SF"},
}


def ordinal_suffix(n: int) -> str:
    if 10 <= n % 100 <= 20:
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


def get_group_display_name(group_id: str, groups: Optional[List[GroupDisplay]] = None, locale: str = "de") -> str:
    """Custom group name when configured, otherwise 'Gruppe A' / 'Group A'."""
    for group in groups or []:
        if group.id.upper() == group_id.upper() and group.custom_name:
            return group.custom_name
    return f"{DEFAULT_GROUP_WORD.get(locale, 'Gruppe')} {group_id.upper()}"


def group_position_label(
    group_id: str, position: int, locale: str = "de", groups: Optional[List[GroupDisplay]] = None
) -> str:
    group_name = get_group_display_name(group_id, groups, locale)
    if locale == "en":
        return f"{position}{ordinal_suffix(position)} {group_name}"
    return f"{position}. {group_name}"


def bracket_outcome_label(match_id: str, outcome: str, locale: str = "de") -> str:
    """
    Label for the winner/loser of a bracket match id.

    r16-3 -> AF 3 / R16-3, qf2 -> VF 2 / QF 2, semi1 -> HF 1 / SF 1.
    Unknown ids are used verbatim.
    """
    word = OUTCOME_WORD.get(locale, OUTCOME_WORD["de"])[outcome]
    abbreviations: Dict[str, str] = ROUND_ABBREVIATION.get(locale, ROUND_ABBREVIATION["de"])

    if match_id.startswith("r16-"):
        number = match_id[len("r16-"):]
        short = abbreviations["r16"]
        return f"{word} {short}-{number}" if locale == "en" else f"{word} {short} {number}"
    for prefix in ("qf", "semi"):
        suffix = match_id[len(prefix):]
        if match_id.startswith(prefix) and suffix.isdigit():
            return f"{word} {abbreviations[prefix]} {suffix}"
    return f"{word} {match_id}"
