"""
Bracket Layout Engine

Given a resolved bracket and the measured geometry of each rendered card,
compute a vertical offset per node and one cubic Bezier connector per edge.

Per round, left to right:
    1. child center = mean of its real parents' current centers
       (no real parents -> measured center kept)
    2. stub parents snap to the child's center
    3. minimum spacing: consecutive centers differ by at least
       (h_a + h_b) / 2 + min_row_gap (forward sweep pushes down, backward
       sweep pulls up)

The parent round is re-spaced after stubs snap, so the spacing law holds for
every round including the first.

Connectors run from the parent's right edge (mid-height) to the child's left
edge (mid-height); both control points sit ``curvature * dx`` in from the ends.
Edges that touch a stub get no connector.

``LayoutScheduler`` coalesces recompute triggers: any number of ``request()``
calls between two ``flush()`` calls produce one computation on the latest
inputs.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from app.services.bracket_graph import BracketNode, ResolvedBracket

logger = logging.getLogger(__name__)

DEFAULT_MIN_CARD_HEIGHT = 56.0
DEFAULT_MIN_ROW_GAP = 16.0
DEFAULT_CURVATURE = 0.35


@dataclass(frozen=True)
class NodeGeometry:
    """Measured card geometry in container coordinates (y grows downward)."""

    center: float
    height: float
    left: float = 0.0
    right: float = 0.0


@dataclass(frozen=True)
class LayoutParams:
    min_card_height: float = DEFAULT_MIN_CARD_HEIGHT
    min_row_gap: float = DEFAULT_MIN_ROW_GAP
    curvature: float = DEFAULT_CURVATURE


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class ConnectorPath:
    source_key: str
    target_key: str
    start: Point
    control1: Point
    control2: Point
    end: Point

    @property
    def d(self) -> str:
        """SVG path data: M ax ay C cx1 ay cx2 by bx by"""
        return (
            f"M {_fmt(self.start.x)} {_fmt(self.start.y)} "
            f"C {_fmt(self.control1.x)} {_fmt(self.control1.y)} "
            f"{_fmt(self.control2.x)} {_fmt(self.control2.y)} "
            f"{_fmt(self.end.x)} {_fmt(self.end.y)}"
        )


@dataclass
class LayoutResult:
    deltas: Dict[str, float] = field(default_factory=dict)  # node key -> target - base
    centers: Dict[str, float] = field(default_factory=dict)  # node key -> target center
    paths: List[ConnectorPath] = field(default_factory=list)


def _fmt(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def cubic_connector(
    source_key: str,
    target_key: str,
    start: Point,
    end: Point,
    curvature: float = DEFAULT_CURVATURE,
) -> ConnectorPath:
    dx = end.x - start.x
    return ConnectorPath(
        source_key=source_key,
        target_key=target_key,
        start=start,
        control1=Point(start.x + curvature * dx, start.y),
        control2=Point(end.x - curvature * dx, end.y),
        end=end,
    )


def enforce_spacing(targets: List[float], heights: List[float], min_row_gap: float) -> None:
    """In-place: push down then pull up so neighbours never overlap."""
    gap = max(0.0, min_row_gap)
    for i in range(1, len(targets)):
        required = (heights[i - 1] + heights[i]) / 2 + gap
        if targets[i] < targets[i - 1] + required:
            targets[i] = targets[i - 1] + required
    for i in range(len(targets) - 2, -1, -1):
        required = (heights[i + 1] + heights[i]) / 2 + gap
        if targets[i] > targets[i + 1] - required:
            targets[i] = min(targets[i + 1] - required, targets[i])


def compute_layout(
    bracket: ResolvedBracket,
    geometry: Mapping[str, NodeGeometry],
    params: Optional[LayoutParams] = None,
) -> LayoutResult:
    """
    Compute per-node vertical deltas and connector curves.

    Args:
        bracket: output of resolve_bracket
        geometry: measured geometry keyed by node key ("<round>:<bracket_pos>");
                  unmeasured nodes use center 0 and min_card_height
        params: card height floor, row gap and curvature

    Returns:
        LayoutResult with a delta for every node and a path for every edge
        between two real nodes whose endpoints were both measured
    """
    params = params or LayoutParams()
    rounds = bracket.rounds

    # (round index, index in round) per node key
    index_of: Dict[str, Tuple[int, int]] = {}
    targets: List[List[float]] = []
    heights: List[List[float]] = []
    for ri, rnd in enumerate(rounds):
        row_t: List[float] = []
        row_h: List[float] = []
        for idx, node in enumerate(rnd.nodes):
            index_of[node.key] = (ri, idx)
            geo = geometry.get(node.key)
            if geo is None:
                row_t.append(0.0)
                row_h.append(params.min_card_height)
            else:
                row_t.append(geo.center)
                row_h.append(geo.height if node.is_stub else max(params.min_card_height, geo.height))
        targets.append(row_t)
        heights.append(row_h)

    if targets:
        enforce_spacing(targets[0], heights[0], params.min_row_gap)

    for ri in range(1, len(rounds)):
        for idx, node in enumerate(rounds[ri].nodes):
            parents = _layout_parents(bracket, node)
            real = [p for p in parents if not p.is_stub and p.key in index_of]
            if real:
                ys = [targets[index_of[p.key][0]][index_of[p.key][1]] for p in real]
                targets[ri][idx] = sum(ys) / len(ys)
            for p in parents:
                if p.is_stub and p.key in index_of:
                    pri, pidx = index_of[p.key]
                    targets[pri][pidx] = targets[ri][idx]
        enforce_spacing(targets[ri - 1], heights[ri - 1], params.min_row_gap)
        enforce_spacing(targets[ri], heights[ri], params.min_row_gap)

    result = LayoutResult()
    for ri, rnd in enumerate(rounds):
        for idx, node in enumerate(rnd.nodes):
            geo = geometry.get(node.key)
            base = geo.center if geo is not None else 0.0
            result.centers[node.key] = targets[ri][idx]
            result.deltas[node.key] = targets[ri][idx] - base

    # bye cards are not drawn, so neither are their connectors
    stub_keys = {node.key for rnd in rounds for node in rnd.nodes if node.is_stub}
    for source_key, target_key in bracket.edge_keys():
        if source_key in stub_keys or target_key in stub_keys:
            continue
        a = geometry.get(source_key)
        b = geometry.get(target_key)
        if a is None or b is None:
            continue
        start = Point(a.right, result.centers[source_key])
        end = Point(b.left, result.centers[target_key])
        result.paths.append(cubic_connector(source_key, target_key, start, end, params.curvature))

    logger.debug("Layout: %d nodes, %d paths", len(result.deltas), len(result.paths))
    return result


def _layout_parents(bracket: ResolvedBracket, node: BracketNode) -> List[BracketNode]:
    """Edge parents plus any stubs sitting at the expected parent coordinates."""
    parents = bracket.parents_of(node)
    for p in bracket.expected_parents(node):
        if p.is_stub and all(p.ref != q.ref for q in parents):
            parents.append(p)
    return parents


LayoutFn = Callable[[ResolvedBracket, Mapping[str, NodeGeometry], Optional[LayoutParams]], LayoutResult]


class LayoutScheduler:
    """
    Single-slot pending recompute.

    ``request()`` stores the latest inputs and marks the layout dirty.
    ``flush()`` computes once for everything requested so far; a request that
    arrives while a computation is running makes that flush run again with the
    newer inputs before returning.
    """

    def __init__(self, compute: LayoutFn = compute_layout):
        self._compute = compute
        self._lock = threading.Lock()
        self._pending: Optional[Tuple[ResolvedBracket, Mapping[str, NodeGeometry], Optional[LayoutParams]]] = None
        self._running = False
        self.result: Optional[LayoutResult] = None
        self.runs = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def request(
        self,
        bracket: ResolvedBracket,
        geometry: Mapping[str, NodeGeometry],
        params: Optional[LayoutParams] = None,
    ) -> None:
        with self._lock:
            self._pending = (bracket, geometry, params)

    def flush(self) -> Optional[LayoutResult]:
        with self._lock:
            if self._running:
                # The active flush picks up the pending inputs when its run ends
                return self.result
            self._running = True
        try:
            while True:
                with self._lock:
                    inputs = self._pending
                    self._pending = None
                if inputs is None:
                    break
                self.result = self._compute(*inputs)
                self.runs += 1
        finally:
            with self._lock:
                self._running = False
        return self.result
