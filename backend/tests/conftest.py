from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from planner.database import get_session
from planner.main import app
from planner.models.schedule_types import ScheduledMatch
from planner.models.tournament_config import TeamEntry

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Models are imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session"""
    from planner.models.match import Match  # noqa: F401
    from planner.models.tournament import Tournament  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """
    Test client with overridden database session.

    The override is set BEFORE TestClient() so the app never touches its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Shared builders
# ============================================================================


def make_teams(count: int, groups: Optional[List[str]] = None) -> List[TeamEntry]:
    """
    Teams t1..tN. With groups, teams are dealt round-robin into the groups
    (t1 -> A, t2 -> B, t3 -> A, ...).
    """
    teams = []
    for i in range(count):
        group = groups[i % len(groups)] if groups else None
        teams.append(TeamEntry(id=f"t{i + 1}", name=f"Team {i + 1}", group=group))
    return teams


@pytest.fixture
def two_group_teams() -> List[TeamEntry]:
    """8 teams, 4 per group"""
    return make_teams(8, ["A", "B"])


DAY_START = datetime(2026, 6, 1, 10, 0)


def make_match(
    match_id: str,
    team_a: str,
    team_b: str,
    slot: int = 0,
    field: int = 1,
    start: Optional[datetime] = None,
    duration: int = 10,
    **extra,
) -> ScheduledMatch:
    """ScheduledMatch with team ids as display names; start defaults to slot * duration."""
    start = start or DAY_START + timedelta(minutes=slot * duration)
    return ScheduledMatch(
        id=match_id,
        match_number=extra.pop("match_number", slot + 1),
        time=start.strftime("%H:%M"),
        field=field,
        slot=slot,
        home_team=extra.pop("home_team", team_a),
        away_team=extra.pop("away_team", team_b),
        original_team_a=team_a,
        original_team_b=team_b,
        start_time=start,
        end_time=start + timedelta(minutes=duration),
        duration=duration,
        **extra,
    )
