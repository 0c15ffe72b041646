import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.database import get_session
from app.main import app

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables are dropped after every test so ids restart at 1
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
    """Provide a test database session on a fresh schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from app.models.match import Match  # noqa: F401
    from app.models.stage import Stage  # noqa: F401
    from app.models.stage_group import StageGroup  # noqa: F401
    from app.models.stage_slot import StageSlot  # noqa: F401
    from app.models.stage_standing import StageStanding  # noqa: F401
    from app.models.team import Team  # noqa: F401
    from app.models.tournament import Tournament  # noqa: F401
    from app.models.tournament_team import TournamentTeam  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the entire
    duration, so the app never touches its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Shared tournament setups
# ============================================================================

# Group strength decides every round-robin result (stronger side wins 2-1).
# Group A ends 3, 4, 1, 2; group B ends 5, 6, 7, 8.
GROUP_A_STRENGTH = {1: 2, 2: 1, 3: 4, 4: 3}
GROUP_B_STRENGTH = {5: 4, 6: 3, 7: 2, 8: 1}


@pytest.fixture
def groups_to_knockout(session: Session):
    """Factory: tournament with a 2x4 groups stage feeding a knockout stage.

    Returns a callable; keyword args:
        play: finish the full round robin (default True)
        ko_config: override the knockout stage config
    The callable returns a dict of ids (tournament, groups_stage, knockout_stage,
    group_a, group_b) plus the team ids per group.
    """
    from app.models.match import MATCH_FINISHED, Match
    from app.models.stage import STAGE_KIND_GROUPS, STAGE_KIND_KNOCKOUT, Stage
    from app.models.stage_group import StageGroup
    from app.models.team import Team
    from app.models.tournament import Tournament
    from app.models.tournament_team import TournamentTeam

    def _build(play: bool = True, ko_config=None):
        tournament = Tournament(name="Spring Cup")
        session.add(tournament)
        session.commit()
        session.refresh(tournament)

        teams = [Team(name=f"Team {i}") for i in range(1, 9)]
        for t in teams:
            session.add(t)
        session.commit()
        team_ids = [t.id for t in teams]

        groups_stage = Stage(tournament_id=tournament.id, name="Groups", kind=STAGE_KIND_GROUPS, ordering=0)
        session.add(groups_stage)
        session.commit()
        session.refresh(groups_stage)

        group_a = StageGroup(stage_id=groups_stage.id, name="A", ordering=0)
        group_b = StageGroup(stage_id=groups_stage.id, name="B", ordering=1)
        session.add(group_a)
        session.add(group_b)
        session.commit()
        session.refresh(group_a)
        session.refresh(group_b)

        config = ko_config if ko_config is not None else {
            "from_stage_id": groups_stage.id,
            "advancers_per_group": 2,
            "semis_cross": "A1-B2",
        }
        knockout = Stage(tournament_id=tournament.id, name="Knockout", kind=STAGE_KIND_KNOCKOUT, ordering=1, config=config)
        session.add(knockout)
        session.commit()
        session.refresh(knockout)

        members = {group_a.id: team_ids[:4], group_b.id: team_ids[4:]}
        strength = dict(GROUP_A_STRENGTH)
        strength.update(GROUP_B_STRENGTH)
        for gid, tids in members.items():
            for tid in tids:
                session.add(
                    TournamentTeam(tournament_id=tournament.id, team_id=tid, stage_id=groups_stage.id, group_id=gid)
                )
            for i in range(len(tids)):
                for j in range(i + 1, len(tids)):
                    a, b = tids[i], tids[j]
                    m = Match(tournament_id=tournament.id, stage_id=groups_stage.id, group_id=gid, team_a_id=a, team_b_id=b)
                    if play:
                        a_wins = strength[a] > strength[b]
                        m.status = MATCH_FINISHED
                        m.team_a_score = 2 if a_wins else 1
                        m.team_b_score = 1 if a_wins else 2
                    session.add(m)
        session.commit()

        return {
            "tournament": tournament.id,
            "groups_stage": groups_stage.id,
            "knockout_stage": knockout.id,
            "group_a": group_a.id,
            "group_b": group_b.id,
            "teams_a": team_ids[:4],
            "teams_b": team_ids[4:],
        }

    return _build
