from planner.models.match import Match
from planner.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Match",
]
