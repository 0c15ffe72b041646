"""Tests for the knockout skeleton builder (pure)."""

from app.services.bracket_graph import resolve_bracket
from app.services.knockout_builder import (
    build_paired_skeleton,
    build_seeded_skeleton,
    next_pow2,
    seed_order,
)


def coords(rows):
    return [(r.round, r.bracket_pos) for r in rows]


def test_next_pow2():
    assert [next_pow2(n) for n in (0, 1, 2, 3, 5, 8, 9)] == [1, 1, 2, 4, 8, 8, 16]


def test_seed_order():
    assert seed_order(2) == [1, 2]
    assert seed_order(8) == [1, 8, 4, 5, 2, 7, 3, 6]


class TestSeededSkeleton:

    def test_full_bracket_of_eight(self):
        rows = build_seeded_skeleton(list(range(101, 109)))
        assert len(rows) == 7
        assert coords(rows) == [(1, 1), (1, 2), (1, 3), (1, 4), (2, 1), (2, 2), (3, 1)]
        first = rows[0]
        assert (first.team_a_id, first.team_b_id) == (101, 108)
        final = rows[-1]
        assert (final.home_source_round, final.home_source_bracket_pos) == (2, 1)
        assert (final.away_source_round, final.away_source_bracket_pos) == (2, 2)
        assert final.home_source_outcome == "W"

    def test_six_entrants_get_two_byes(self):
        rows = build_seeded_skeleton([10, 20, 30, 40, 50, 60])
        assert coords(rows) == [(1, 2), (1, 4), (2, 1), (2, 2), (3, 1)]
        r1 = {r.bracket_pos: (r.team_a_id, r.team_b_id) for r in rows if r.round == 1}
        assert r1 == {2: (40, 50), 4: (30, 60)}
        semi_1 = rows[2]
        assert semi_1.team_a_id == 10
        assert (semi_1.away_source_round, semi_1.away_source_bracket_pos) == (1, 2)
        semi_2 = rows[3]
        assert semi_2.team_a_id == 20
        assert (semi_2.away_source_round, semi_2.away_source_bracket_pos) == (1, 4)

    def test_unfilled_seed_is_a_bye(self):
        rows = build_seeded_skeleton([1, 2, None, 4])
        assert coords(rows) == [(1, 1), (2, 1)]
        assert (rows[0].team_a_id, rows[0].team_b_id) == (1, 4)
        assert rows[1].team_b_id == 2
        assert rows[1].home_source_bracket_pos == 1

    def test_two_entrants_single_final(self):
        rows = build_seeded_skeleton([7, 9])
        assert coords(rows) == [(1, 1)]
        assert (rows[0].team_a_id, rows[0].team_b_id) == (7, 9)

    def test_empty(self):
        assert build_seeded_skeleton([]) == []

    def test_resolver_fills_bye_gaps(self):
        rows = build_seeded_skeleton([10, 20, 30, 40, 50, 60])
        for i, row in enumerate(rows, start=1):
            row.id = i
        bracket = resolve_bracket(rows)
        assert bracket.stub_count == 2
        assert [n.key for n in bracket.rounds[0].nodes] == ["1:1", "1:2", "1:3", "1:4"]


class TestPairedSkeleton:

    def test_slot_pairs_meet_in_first_round(self):
        rows = build_paired_skeleton([3, 6, 5, 4])
        assert coords(rows) == [(1, 1), (1, 2), (2, 1)]
        assert (rows[0].team_a_id, rows[0].team_b_id) == (3, 6)
        assert (rows[1].team_a_id, rows[1].team_b_id) == (5, 4)

    def test_padded_to_power_of_two(self):
        rows = build_paired_skeleton([1, 2, 3])
        assert coords(rows) == [(1, 1), (2, 1)]
        assert rows[1].team_b_id == 3
        assert (rows[1].home_source_round, rows[1].home_source_bracket_pos) == (1, 1)

    def test_empty(self):
        assert build_paired_skeleton([]) == []
