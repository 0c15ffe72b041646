"""
Bracket Graph Resolver

Turns a knockout stage's matches (with partial or missing source linkage) into
rounds of nodes plus parent -> child edges.

- Rounds: matches grouped by ``round`` (None -> 0), sorted by ``bracket_pos``.
- Byes: every match at (r, p) in the second round onward gets nodes at
  (r-1, 2p-1) and (r-1, 2p); missing coordinates are filled with stubs in a
  single forward pass. Stubs are never themselves padded.
- Parents: explicit source match ids, then stable (round, bracket_pos)
  coordinates, then the structural rule for whatever is still missing.
- Edges: deduplicated on (from, to).

Stubs exist only for the lifetime of one ``resolve_bracket`` call. Outside this
module every node is addressed by its coordinate key ``"<round>:<bracket_pos>"``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from app.models.match import OUTCOME_LOSER, OUTCOME_WINNER

logger = logging.getLogger(__name__)

SIDE_HOME = "home"
SIDE_AWAY = "away"


# ---------------------------------------------------------------------------
# Linkage (how one side of a match says where its team comes from)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExplicitLink:
    match_id: int
    outcome: str = OUTCOME_WINNER


@dataclass(frozen=True)
class StableLink:
    round: int
    bracket_pos: int
    outcome: str = OUTCOME_WINNER


@dataclass(frozen=True)
class InferredLink:
    pass


Linkage = Union[ExplicitLink, StableLink, InferredLink]


def _outcome(value: Optional[str]) -> str:
    return OUTCOME_LOSER if value == OUTCOME_LOSER else OUTCOME_WINNER


def side_linkage(match: Any, side: str) -> Linkage:
    """Normalise the nullable source columns of one side into a single variant."""
    source_id = getattr(match, f"{side}_source_match_id", None)
    outcome = _outcome(getattr(match, f"{side}_source_outcome", None))
    if source_id is not None:
        return ExplicitLink(match_id=source_id, outcome=outcome)
    src_round = getattr(match, f"{side}_source_round", None)
    src_pos = getattr(match, f"{side}_source_bracket_pos", None)
    if src_round is not None and src_pos is not None:
        return StableLink(round=src_round, bracket_pos=src_pos, outcome=outcome)
    return InferredLink()


def match_linkage(match: Any) -> Tuple[Linkage, Linkage]:
    return side_linkage(match, SIDE_HOME), side_linkage(match, SIDE_AWAY)


# ---------------------------------------------------------------------------
# Node identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RealRef:
    match_id: int


@dataclass(frozen=True)
class StubRef:
    n: int  # per-invocation sequence, starts at 1


NodeRef = Union[RealRef, StubRef]


def coordinate_key(round_no: int, bracket_pos: Optional[int]) -> str:
    return f"{round_no}:{bracket_pos if bracket_pos is not None else 0}"


@dataclass
class BracketNode:
    ref: NodeRef
    round: int
    bracket_pos: Optional[int]
    key: str
    match: Optional[Any] = None

    @property
    def is_stub(self) -> bool:
        return isinstance(self.ref, StubRef)

    @property
    def match_id(self) -> Optional[int]:
        return self.ref.match_id if isinstance(self.ref, RealRef) else None


@dataclass(frozen=True)
class Edge:
    source: NodeRef
    target: NodeRef


@dataclass
class BracketRound:
    round: int
    nodes: List[BracketNode] = field(default_factory=list)


@dataclass
class ResolvedBracket:
    rounds: List[BracketRound]
    edges: List[Edge]
    nodes_by_ref: Dict[NodeRef, BracketNode]
    nodes_by_coord: Dict[Tuple[int, int], BracketNode]

    def node(self, ref: NodeRef) -> BracketNode:
        return self.nodes_by_ref[ref]

    def at(self, round_no: int, bracket_pos: int) -> Optional[BracketNode]:
        return self.nodes_by_coord.get((round_no, bracket_pos))

    def expected_parents(self, node: BracketNode) -> List[BracketNode]:
        """Nodes at (r-1, 2p-1) and (r-1, 2p) that exist."""
        if node.bracket_pos is None or node.round <= 1:
            return []
        r, p = node.round, node.bracket_pos
        found = [self.at(r - 1, 2 * p - 1), self.at(r - 1, 2 * p)]
        return [n for n in found if n is not None]

    def parents_of(self, node: BracketNode) -> List[BracketNode]:
        return [self.nodes_by_ref[e.source] for e in self.edges if e.target == node.ref]

    @property
    def stub_count(self) -> int:
        return sum(1 for n in self.nodes_by_ref.values() if n.is_stub)

    def edge_keys(self) -> List[Tuple[str, str]]:
        return [(self.nodes_by_ref[e.source].key, self.nodes_by_ref[e.target].key) for e in self.edges]


def _round_of(match: Any) -> int:
    r = getattr(match, "round", None)
    return 0 if r is None else r


def _pos_sort(node: BracketNode) -> Tuple[int, int]:
    pos = node.bracket_pos if node.bracket_pos is not None else 0
    tiebreak = node.match_id if node.match_id is not None else 0
    return (pos, tiebreak)


def resolve_bracket(matches: Iterable[Any]) -> ResolvedBracket:
    """
    Resolve rounds, bye stubs and parent edges for one knockout stage.

    Args:
        matches: match-like objects with id, round, bracket_pos and the
                 home/away source columns

    Returns:
        ResolvedBracket with rounds ordered by round number. Calling twice with
        the same input yields equal stub counts and equal edges.
    """
    matches = [m for m in matches if getattr(m, "id", None) is not None]
    rounds: Dict[int, BracketRound] = {}
    nodes_by_ref: Dict[NodeRef, BracketNode] = {}
    nodes_by_coord: Dict[Tuple[int, int], BracketNode] = {}
    real_by_id: Dict[int, BracketNode] = {}

    for m in matches:
        r = _round_of(m)
        pos = getattr(m, "bracket_pos", None)
        coord = (r, pos if pos is not None else 0)
        key = coordinate_key(r, pos) if coord not in nodes_by_coord else f"match:{m.id}"
        node = BracketNode(ref=RealRef(m.id), round=r, bracket_pos=pos, key=key, match=m)
        rounds.setdefault(r, BracketRound(round=r)).nodes.append(node)
        nodes_by_ref[node.ref] = node
        real_by_id[m.id] = node
        nodes_by_coord.setdefault(coord, node)

    for rnd in rounds.values():
        rnd.nodes.sort(key=_pos_sort)

    # Bye stubs: one forward pass over the rounds present before padding
    stub_seq = 0
    present_rounds = sorted(rounds)
    for r in present_rounds[1:]:
        added = False
        for node in list(rounds[r].nodes):
            p = node.bracket_pos if node.bracket_pos is not None else 1
            for parent_pos in (2 * p - 1, 2 * p):
                coord = (r - 1, parent_pos)
                if coord in nodes_by_coord:
                    continue
                stub_seq += 1
                stub = BracketNode(
                    ref=StubRef(stub_seq),
                    round=r - 1,
                    bracket_pos=parent_pos,
                    key=coordinate_key(r - 1, parent_pos),
                )
                rounds.setdefault(r - 1, BracketRound(round=r - 1)).nodes.append(stub)
                nodes_by_ref[stub.ref] = stub
                nodes_by_coord[coord] = stub
                added = True
        if added:
            rounds[r - 1].nodes.sort(key=_pos_sort)

    if stub_seq:
        logger.debug("Inserted %d bye stubs", stub_seq)

    ordered = [rounds[r] for r in sorted(rounds)]
    bracket = ResolvedBracket(rounds=ordered, edges=[], nodes_by_ref=nodes_by_ref, nodes_by_coord=nodes_by_coord)

    seen = set()
    for rnd in ordered[1:]:
        for node in rnd.nodes:
            for parent in _resolve_parents(bracket, node, real_by_id):
                pair = (parent.ref, node.ref)
                if pair in seen:
                    continue
                seen.add(pair)
                bracket.edges.append(Edge(source=parent.ref, target=node.ref))

    return bracket


def _resolve_parents(bracket: ResolvedBracket, node: BracketNode, real_by_id: Dict[int, BracketNode]) -> List[BracketNode]:
    out: List[BracketNode] = []

    def add(candidate: Optional[BracketNode]) -> None:
        if candidate is not None and candidate.ref != node.ref and all(c.ref != candidate.ref for c in out):
            out.append(candidate)

    links: Tuple[Linkage, ...] = match_linkage(node.match) if node.match is not None else ()

    for link in links:
        if isinstance(link, ExplicitLink):
            add(real_by_id.get(link.match_id))
    for link in links:
        if isinstance(link, StableLink):
            add(bracket.at(link.round, link.bracket_pos))

    expected = bracket.expected_parents(node)
    if not out:
        return expected[:2]
    if len(out) == 1:
        other = next((x for x in expected if x.ref != out[0].ref), None)
        if other is not None:
            out.append(other)
    return out[:2]
