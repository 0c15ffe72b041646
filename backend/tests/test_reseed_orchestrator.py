"""
Tests for the Reseed Orchestrator: source standings -> slots -> knockout matches.

The shared fixture gives group A final order 3, 4, 1, 2 and group B 5, 6, 7, 8,
so the default A1-B2 crossing fills slots 1..4 with 3, 6, 5, 4.
"""

import pytest
from sqlmodel import Session, select

from app.models.match import MATCH_FINISHED, Match
from app.models.stage import STAGE_KIND_KNOCKOUT, STAGE_KIND_LEAGUE, Stage
from app.models.stage_slot import SLOT_SOURCE_AUTO, SLOT_SOURCE_MANUAL, StageSlot
from app.models.team import Team
from app.models.tournament import Tournament
from app.models.tournament_team import TournamentTeam
from app.services.errors import (
    InvalidStageConfigError,
    ReseedConflictError,
    StageNotFoundError,
    UnsupportedSourceKindError,
)
from app.services.reseed_orchestrator import (
    RESEED_LOCKED,
    RESEED_SEEDED,
    RESEED_SKIPPED,
    reseed_knockout_stage,
)
from app.services.stage_standings_service import load_stage_tables


def _slots(session: Session, stage_id: int):
    rows = session.exec(select(StageSlot).where(StageSlot.stage_id == stage_id).order_by(StageSlot.slot_id)).all()
    return [(s.slot_id, s.team_id) for s in rows]


def _ko_matches(session: Session, stage_id: int):
    return session.exec(
        select(Match).where(Match.stage_id == stage_id).order_by(Match.round, Match.bracket_pos)
    ).all()


def _version(session: Session, stage_id: int) -> int:
    session.expire_all()
    return session.get(Stage, stage_id).slots_version


def _flip_five_six(session: Session, ids) -> None:
    # 6 now beats 5, so group B ends 6, 5, 7, 8
    match = session.exec(
        select(Match).where(Match.stage_id == ids["groups_stage"], Match.team_a_id == 5, Match.team_b_id == 6)
    ).one()
    match.team_a_score = 1
    match.team_b_score = 2
    session.add(match)
    session.commit()


class TestReseedFromGroups:

    def test_seeds_slots_and_bracket(self, session, groups_to_knockout):
        ids = groups_to_knockout()

        result = reseed_knockout_stage(session, ids["knockout_stage"])

        assert result.status == RESEED_SEEDED
        assert result.source_stage_id == ids["groups_stage"]
        assert result.source_kind == "groups"
        assert result.slots_version == 1
        assert [(a.slot, a.team_id) for a in result.assignments] == [(1, 3), (2, 6), (3, 5), (4, 4)]
        assert _slots(session, ids["knockout_stage"]) == [(1, 3), (2, 6), (3, 5), (4, 4)]
        assert load_stage_tables(session, ids["groups_stage"])

        matches = _ko_matches(session, ids["knockout_stage"])
        assert result.matches_created == 3
        assert [(m.round, m.bracket_pos, m.team_a_id, m.team_b_id) for m in matches] == [
            (1, 1, 3, 6),
            (1, 2, 5, 4),
            (2, 1, None, None),
        ]
        final = matches[2]
        assert (final.home_source_round, final.home_source_bracket_pos) == (1, 1)
        assert (final.away_source_round, final.away_source_bracket_pos) == (1, 2)
        assert _version(session, ids["knockout_stage"]) == 1

    def test_a1_b1_crossing(self, session, groups_to_knockout):
        ids = groups_to_knockout(ko_config={"fromStageId": 1, "semisCross": "A1-B1"})
        result = reseed_knockout_stage(session, ids["knockout_stage"])
        assert [a.team_id for a in result.assignments] == [3, 5, 4, 6]

    def test_unplayed_groups_use_baseline(self, session, groups_to_knockout):
        ids = groups_to_knockout(play=False)
        result = reseed_knockout_stage(session, ids["knockout_stage"])
        assert result.status == RESEED_SEEDED
        assert [a.team_id for a in result.assignments] == [1, 6, 5, 2]

    def test_populated_slots_are_skipped(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])

        again = reseed_knockout_stage(session, ids["knockout_stage"])

        assert again.status == RESEED_SKIPPED
        assert again.slots_version == 1
        assert again.matches_created == 0
        assert [s.team_id for s in again.slots] == [3, 6, 5, 4]
        assert _version(session, ids["knockout_stage"]) == 1

    def test_reseed_overwrites_auto_and_keeps_manual(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])
        slot_2 = session.exec(
            select(StageSlot).where(StageSlot.stage_id == ids["knockout_stage"], StageSlot.slot_id == 2)
        ).one()
        slot_2.team_id = 7
        slot_2.source = SLOT_SOURCE_MANUAL
        session.add(slot_2)
        session.commit()

        result = reseed_knockout_stage(session, ids["knockout_stage"], reseed=True)

        assert result.status == RESEED_SEEDED
        assert result.slots_version == 2
        assert _slots(session, ids["knockout_stage"]) == [(1, 3), (2, 7), (3, 5), (4, 4)]
        sources = {s.slot_id: s.source for s in result.slots}
        assert sources == {1: SLOT_SOURCE_AUTO, 2: SLOT_SOURCE_MANUAL, 3: SLOT_SOURCE_AUTO, 4: SLOT_SOURCE_AUTO}
        matches = _ko_matches(session, ids["knockout_stage"])
        assert len(matches) == 3
        assert (matches[0].team_a_id, matches[0].team_b_id) == (3, 7)

    def test_reseed_uses_fresh_results(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])
        _flip_five_six(session, ids)

        fresh = reseed_knockout_stage(session, ids["knockout_stage"], reseed=True)

        assert [a.team_id for a in fresh.assignments] == [3, 5, 6, 4]
        assert fresh.slots_version == 2

    def test_recompute_applies_even_when_skipped(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])
        _flip_five_six(session, ids)

        result = reseed_knockout_stage(session, ids["knockout_stage"], recompute=True)

        assert result.status == RESEED_SKIPPED
        assert [s.team_id for s in result.slots] == [3, 6, 5, 4]
        group_b = load_stage_tables(session, ids["groups_stage"])[ids["group_b"]]
        assert group_b[0].team_id == 6
        assert _version(session, ids["knockout_stage"]) == 1

    def test_existing_matches_without_slots_are_skipped(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        session.add(
            Match(
                tournament_id=ids["tournament"],
                stage_id=ids["knockout_stage"],
                round=1,
                bracket_pos=1,
                team_a_id=1,
                team_b_id=8,
            )
        )
        session.commit()

        result = reseed_knockout_stage(session, ids["knockout_stage"])

        assert result.status == RESEED_SKIPPED
        assert result.matches_created == 0
        assert _slots(session, ids["knockout_stage"]) == []
        matches = _ko_matches(session, ids["knockout_stage"])
        assert [(m.team_a_id, m.team_b_id) for m in matches] == [(1, 8)]

        overwritten = reseed_knockout_stage(session, ids["knockout_stage"], reseed=True)
        assert overwritten.status == RESEED_SEEDED
        assert overwritten.matches_created == 3
        assert (_ko_matches(session, ids["knockout_stage"])[0].team_a_id) == 3

    def test_manual_team_is_not_placed_twice(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])
        slot_2 = session.exec(
            select(StageSlot).where(StageSlot.stage_id == ids["knockout_stage"], StageSlot.slot_id == 2)
        ).one()
        # 5 also qualifies into slot 3
        slot_2.team_id = 5
        slot_2.source = SLOT_SOURCE_MANUAL
        session.add(slot_2)
        session.commit()

        result = reseed_knockout_stage(session, ids["knockout_stage"], reseed=True)

        assert _slots(session, ids["knockout_stage"]) == [(1, 3), (2, 5), (4, 4)]
        assert [(a.slot, a.team_id) for a in result.assignments] == [(1, 3), (4, 4)]
        matches = _ko_matches(session, ids["knockout_stage"])
        assert [(m.round, m.bracket_pos, m.team_a_id, m.team_b_id) for m in matches] == [
            (1, 1, 3, 5),
            (2, 1, None, 4),
        ]
        teams = [t for m in matches for t in (m.team_a_id, m.team_b_id) if t is not None]
        assert len(teams) == len(set(teams))

    def test_locked_once_a_knockout_match_finished(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])
        semi = _ko_matches(session, ids["knockout_stage"])[0]
        semi.status = MATCH_FINISHED
        semi.team_a_score = 1
        semi.team_b_score = 0
        session.add(semi)
        session.commit()
        _flip_five_six(session, ids)

        result = reseed_knockout_stage(session, ids["knockout_stage"], force=True)

        assert result.status == RESEED_LOCKED
        assert result.slots_version == 1
        assert len(result.slots) == 4
        assert len(_ko_matches(session, ids["knockout_stage"])) == 3
        assert _version(session, ids["knockout_stage"]) == 1
        # the forced recompute still reached the source tables
        assert load_stage_tables(session, ids["groups_stage"])[ids["group_b"]][0].team_id == 6


class TestReseedFromLeague:

    def _league_cup(self, session: Session, seeds, advancers_total: int) -> int:
        tournament = Tournament(name="League Cup")
        session.add(tournament)
        session.commit()
        session.refresh(tournament)
        for i in range(1, len(seeds) + 1):
            session.add(Team(name=f"Team {i}"))
        league = Stage(tournament_id=tournament.id, name="League", kind=STAGE_KIND_LEAGUE)
        session.add(league)
        session.commit()
        session.refresh(league)
        for team_id, seed in seeds.items():
            session.add(TournamentTeam(tournament_id=tournament.id, team_id=team_id, seed=seed))
        ko = Stage(
            tournament_id=tournament.id,
            name="Playoffs",
            kind=STAGE_KIND_KNOCKOUT,
            config={"from_stage_id": league.id, "advancers_total": advancers_total},
        )
        session.add(ko)
        session.commit()
        session.refresh(ko)
        return ko.id

    def test_top_n_by_seed_into_seeded_bracket(self, session):
        ko_id = self._league_cup(session, {1: 6, 2: 5, 3: 4, 4: 3, 5: 2, 6: 1}, advancers_total=4)

        result = reseed_knockout_stage(session, ko_id)

        assert result.source_kind == "league"
        assert [a.team_id for a in result.assignments] == [6, 5, 4, 3]
        matches = _ko_matches(session, ko_id)
        # seed 1 v seed 4, seed 2 v seed 3
        assert [(m.round, m.team_a_id, m.team_b_id) for m in matches] == [(1, 6, 3), (1, 5, 4), (2, None, None)]

    def test_single_advancer_builds_no_bracket(self, session):
        ko_id = self._league_cup(session, {1: 1}, advancers_total=8)

        result = reseed_knockout_stage(session, ko_id)

        assert result.status == RESEED_SEEDED
        assert result.matches_created == 0
        assert "Fewer than two" in result.message
        assert _slots(session, ko_id) == [(1, 1)]
        assert _ko_matches(session, ko_id) == []
        assert _version(session, ko_id) == 1


class TestReseedGuards:

    def test_target_must_be_knockout(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        with pytest.raises(InvalidStageConfigError):
            reseed_knockout_stage(session, ids["groups_stage"])

    def test_missing_target(self, session):
        with pytest.raises(StageNotFoundError):
            reseed_knockout_stage(session, 999)

    def test_missing_from_stage_id(self, session, groups_to_knockout):
        ids = groups_to_knockout(ko_config={"advancers_per_group": 2})
        with pytest.raises(InvalidStageConfigError):
            reseed_knockout_stage(session, ids["knockout_stage"])
        assert _slots(session, ids["knockout_stage"]) == []

    def test_missing_source_stage(self, session, groups_to_knockout):
        ids = groups_to_knockout(ko_config={"from_stage_id": 999})
        with pytest.raises(StageNotFoundError):
            reseed_knockout_stage(session, ids["knockout_stage"])

    def test_bad_crossing_style(self, session, groups_to_knockout):
        ids = groups_to_knockout(ko_config={"from_stage_id": 1, "semis_cross": "A1-A2"})
        with pytest.raises(InvalidStageConfigError):
            reseed_knockout_stage(session, ids["knockout_stage"])

    def test_unsupported_source_kind_writes_nothing(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        other = Stage(
            tournament_id=ids["tournament"],
            name="Plate",
            kind=STAGE_KIND_KNOCKOUT,
            config={"from_stage_id": ids["knockout_stage"]},
        )
        session.add(other)
        session.commit()
        session.refresh(other)

        with pytest.raises(UnsupportedSourceKindError):
            reseed_knockout_stage(session, other.id, force=True)

        assert _slots(session, other.id) == []
        assert _ko_matches(session, other.id) == []
        assert load_stage_tables(session, ids["groups_stage"]) == {}
        assert _version(session, other.id) == 0

    def test_expected_version_mismatch_is_a_conflict(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        reseed_knockout_stage(session, ids["knockout_stage"])

        with pytest.raises(ReseedConflictError) as exc:
            reseed_knockout_stage(session, ids["knockout_stage"], reseed=True, expected_version=0)

        assert "RESEED_CONFLICT" in str(exc.value)
        assert exc.value.actual_version == 1
        assert _version(session, ids["knockout_stage"]) == 1

    def test_expected_version_match_proceeds(self, session, groups_to_knockout):
        ids = groups_to_knockout()
        first = reseed_knockout_stage(session, ids["knockout_stage"], expected_version=0)
        second = reseed_knockout_stage(
            session, ids["knockout_stage"], reseed=True, expected_version=first.slots_version
        )
        assert second.slots_version == 2
