"""スリザーリンクのモデル化・判定・生成

辺変数は横線 ``horizontal[r][c]`` ((rows + 1) x cols) を先に、縦線
``vertical[r][c]`` (rows x (cols + 1)) を後ろに並べる。値 1 が線あり。
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Set, Tuple

from .. import sat_unique
from ..board import Board
from ..constants import ALLOWED_DIFFICULTIES, OptionSpec
from ..constraints import Cardinality, Constraint, LoopVertex, Reductions
from ..loop_wilson import Edges, generate_loop, rectangle_edges
from ..model import Model
from ..puzzle_builder import Candidate, reduce_clues
from ..puzzle_types import MalformedPuzzleError, Puzzle
from ..search import search
from ..validators import is_single_loop
from .common import clamp_dims, read_grid, read_size

logger = logging.getLogger(__name__)

TYPE = "slitherlink"

OPTIONS = {"difficulty": OptionSpec("normal", choices=ALLOWED_DIFFICULTIES)}

# 難易度ごとのヒント数下限 (盤面のマス数に対する割合)
MIN_HINT_RATIO = {
    "easy": 0.3,
    "normal": 0.2,
    "hard": 0.15,
    "expert": 0.1,
}

# 0 とそれ以外のヒントを最初に隠す確率
HIDE_ZERO_P = 0.92
HIDE_OTHER_P = 0.2

_REDUCE_TIMEOUT_S = 0.3

OFF = 0b01
ON = 0b10

Clues = List[List[Optional[int]]]


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    return clamp_dims(rows, cols, 3, 25)


class _Layout:
    """辺と頂点の番号付け"""

    def __init__(self, rows: int, cols: int) -> None:
        self.rows = rows
        self.cols = cols
        self.h_count = (rows + 1) * cols
        self.size = self.h_count + rows * (cols + 1)

    def h(self, r: int, c: int) -> int:
        return r * self.cols + c

    def v(self, r: int, c: int) -> int:
        return self.h_count + r * (self.cols + 1) + c

    def cell_edges(self, r: int, c: int) -> List[int]:
        return [self.h(r, c), self.h(r + 1, c), self.v(r, c), self.v(r, c + 1)]

    def vertex_edges(self, r: int, c: int) -> List[int]:
        edges = []
        if c < self.cols:
            edges.append(self.h(r, c))
        if c > 0:
            edges.append(self.h(r, c - 1))
        if r < self.rows:
            edges.append(self.v(r, c))
        if r > 0:
            edges.append(self.v(r - 1, c))
        return edges

    def endpoints(self, var: int) -> Tuple[int, int]:
        """辺の両端の頂点番号"""
        width = self.cols + 1
        if var < self.h_count:
            r, c = divmod(var, self.cols)
            return r * width + c, r * width + c + 1
        r, c = divmod(var - self.h_count, width)
        return r * width + c, (r + 1) * width + c

    def split(self, values: List[int]) -> Edges:
        rows, cols = self.rows, self.cols
        horizontal = [[values[self.h(r, c)] == 1 for c in range(cols)] for r in range(rows + 1)]
        vertical = [[values[self.v(r, c)] == 1 for c in range(cols + 1)] for r in range(rows)]
        return {"horizontal": horizontal, "vertical": vertical}


class SingleLoop(Constraint):
    """線が途中で閉じて複数のループに分かれないようにする

    閉じたループができたら、他に線がなければ残りの辺はすべて線なし。
    他に線があれば矛盾。開いた線の両端を直接結ぶ辺は、他に線が
    残っている限り引けない。
    """

    name = "loop"
    is_global = True

    def __init__(self, layout: _Layout) -> None:
        super().__init__(range(layout.size))
        self.layout = layout
        self.ends = [layout.endpoints(var) for var in range(layout.size)]
        # 頂点の組 -> 辺番号
        self.edge_of = {frozenset(pair): var for var, pair in enumerate(self.ends)}

    def deduce(self, board: Board) -> Optional[Reductions]:
        domains = board.domains
        on = [var for var, dom in enumerate(domains) if dom == ON]
        if not on:
            return []
        adj: Dict[int, List[int]] = {}
        for var in on:
            a, b = self.ends[var]
            adj.setdefault(a, []).append(b)
            adj.setdefault(b, []).append(a)

        seen: Set[int] = set()
        pieces: List[Tuple[Set[int], List[int]]] = []  # (頂点集合, 端点)
        for start in adj:
            if start in seen:
                continue
            seen.add(start)
            stack = [start]
            verts = {start}
            while stack:
                u = stack.pop()
                for w in adj[u]:
                    if w not in seen:
                        seen.add(w)
                        verts.add(w)
                        stack.append(w)
            ends = [u for u in verts if len(adj[u]) == 1]
            pieces.append((verts, ends))

        closed = [verts for verts, ends in pieces if not ends]
        if closed:
            if len(pieces) > 1:
                return None
            return [(var, OFF) for var, dom in enumerate(domains) if dom == 0b11]

        out: Reductions = []
        if len(pieces) > 1:
            for _, ends in pieces:
                if len(ends) != 2:
                    continue
                var = self.edge_of.get(frozenset(ends))
                if var is not None and domains[var] == 0b11:
                    out.append((var, OFF))
        return out


def _read_clues(puzzle: Puzzle) -> Clues:
    rows, cols = read_size(puzzle)
    clues = read_grid(puzzle, "clues", rows, cols)
    for r in range(rows):
        for c in range(cols):
            v = clues[r][c]
            if v is None:
                continue
            if not isinstance(v, int) or not 0 <= v <= 4:
                raise MalformedPuzzleError(f"clues[{r}][{c}] の値 {v!r} は 0-4 の範囲外です")
    return clues


def build_model(puzzle: Puzzle) -> Model:
    rows, cols = read_size(puzzle)
    clues = _read_clues(puzzle)
    layout = _Layout(rows, cols)
    constraints: List[Constraint] = []
    weight = [0] * layout.size
    for r in range(rows):
        for c in range(cols):
            clue = clues[r][c]
            if clue is None:
                continue
            scope = layout.cell_edges(r, c)
            constraints.append(Cardinality(scope, ON, clue, clue, name="clue"))
            for var in scope:
                weight[var] += 1 + (clue == 3)
    for r in range(rows + 1):
        for c in range(cols + 1):
            constraints.append(LoopVertex(layout.vertex_edges(r, c)))

    def single_loop(board: Board) -> bool:
        edges = layout.split(board.values())
        return is_single_loop(edges["horizontal"], edges["vertical"])

    return Model(
        [0b11] * layout.size,
        constraints,
        global_constraints=[SingleLoop(layout)],
        validators=[single_loop],
        value_order=[1, 0],
        tie_break=lambda board, var: weight[var],
    )


def decode(puzzle: Puzzle, values: List[int]) -> Edges:
    rows, cols = read_size(puzzle)
    return _Layout(rows, cols).split(values)


def _edges_match(state: Any, rows: int, cols: int) -> bool:
    if not isinstance(state, dict):
        return False
    h, v = state.get("horizontal"), state.get("vertical")
    if not isinstance(h, list) or len(h) != rows + 1 or not isinstance(v, list) or len(v) != rows:
        return False
    return all(isinstance(row, list) and len(row) == cols for row in h) and all(
        isinstance(row, list) and len(row) == cols + 1 for row in v
    )


def encode(puzzle: Puzzle, state: Any) -> Dict[int, int]:
    rows, cols = read_size(puzzle)
    seed: Dict[int, int] = {}
    if not _edges_match(state, rows, cols):
        return seed
    layout = _Layout(rows, cols)
    for r in range(rows + 1):
        for c in range(cols):
            if state["horizontal"][r][c] is True:
                seed[layout.h(r, c)] = 1
    for r in range(rows):
        for c in range(cols + 1):
            if state["vertical"][r][c] is True:
                seed[layout.v(r, c)] = 1
    return seed


def cell_counts(edges: Edges, rows: int, cols: int) -> List[List[int]]:
    """各マスを囲む線の本数"""
    h, v = edges["horizontal"], edges["vertical"]
    return [
        [int(h[r][c]) + int(h[r + 1][c]) + int(v[r][c]) + int(v[r][c + 1]) for c in range(cols)]
        for r in range(rows)
    ]


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """線が1本のループで、表示されている数字と一致するか"""

    rows, cols = read_size(puzzle)
    if not _edges_match(state, rows, cols):
        return False
    clues = _read_clues(puzzle)
    if not is_single_loop(state["horizontal"], state["vertical"]):
        return False
    counts = cell_counts(state, rows, cols)
    return all(
        clues[r][c] is None or clues[r][c] == counts[r][c]
        for r in range(rows)
        for c in range(cols)
    )


# ---------------------------------------------------------------------------
# 生成
# ---------------------------------------------------------------------------


def _calculate_edge_coverage(clues: Clues) -> Dict[Tuple[int, int], int]:
    """各ヒントが単独で受け持つ辺の数

    周囲のセルにヒントがない辺のみを数える。境界上の辺は
    他セルと共有しないため、そのヒントの専有とみなす。
    """

    rows, cols = len(clues), len(clues[0])
    coverage: Dict[Tuple[int, int], int] = {}
    for r in range(rows):
        for c in range(cols):
            if clues[r][c] is None:
                continue
            count = 0
            if r == 0 or clues[r - 1][c] is None:
                count += 1
            if r == rows - 1 or clues[r + 1][c] is None:
                count += 1
            if c == 0 or clues[r][c - 1] is None:
                count += 1
            if c == cols - 1 or clues[r][c + 1] is None:
                count += 1
            coverage[(r, c)] = count
    return coverage


def _unique(clues: Clues, rows: int, cols: int, timeout_s: float) -> bool:
    """探索で一意性を確かめ、時間切れなら SAT ソルバーに任せる"""
    puzzle = {"size": {"rows": rows, "cols": cols}, "clues": clues}
    result = search(build_model(puzzle), mode="count", limit=2, timeout_s=timeout_s)
    if result.complete or result.count >= 2:
        return result.count == 1
    try:
        return sat_unique.is_unique(clues, rows, cols)
    except TimeoutError as exc:
        # 判定できない盤面は一意と見なさない
        logger.info("SAT による一意性判定を打ち切りました: %s", exc)
        return False


def confirm_unique(candidate: Candidate, rows: int, cols: int) -> bool:
    """探索の数え上げが時間切れになった盤面を SAT で判定する"""
    return sat_unique.is_unique(candidate.fields["clues"], rows, cols)


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    edges, length, curve = generate_loop(rows, cols, rng)
    full = cell_counts(edges, rows, cols)
    clues: Clues = [
        [
            None if rng.random() < (HIDE_ZERO_P if v == 0 else HIDE_OTHER_P) else v
            for v in row
        ]
        for row in full
    ]
    extra = {"loopLength": length, "curveRatio": curve}
    min_hint = max(1, int(rows * cols * MIN_HINT_RATIO[opts["difficulty"]]))
    if _unique(clues, rows, cols, _REDUCE_TIMEOUT_S):
        coverage = _calculate_edge_coverage(clues)
        order = list(coverage)
        rng.shuffle(order)
        order.sort(key=lambda cell: coverage[cell])
        clues = reduce_clues(
            clues,
            order,
            lambda trial: _unique(trial, rows, cols, _REDUCE_TIMEOUT_S),
            min_hint=min_hint,
        )
    else:
        logger.info("初期ヒントでは一意にならないため、ヒント追加に任せます")
    return Candidate({"clues": clues, "cluesFull": full}, edges, extra)


def tighten(candidate: Candidate, rng: random.Random) -> bool:
    """隠したヒントの一部を元に戻す"""
    clues = candidate.fields["clues"]
    full = candidate.fields["cluesFull"]
    hidden = [
        (r, c) for r, row in enumerate(clues) for c, v in enumerate(row) if v is None
    ]
    if not hidden:
        return False
    rng.shuffle(hidden)
    for r, c in hidden[: max(1, len(hidden) // 10)]:
        clues[r][c] = full[r][c]
    return True


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """外周ループにすべてのヒントを表示した盤面"""
    edges = rectangle_edges(rows, cols)
    full = cell_counts(edges, rows, cols)
    clues: Clues = [list(row) for row in full]
    return Candidate({"clues": clues, "cluesFull": full}, edges)


__all__ = [
    "TYPE",
    "OPTIONS",
    "SingleLoop",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "cell_counts",
    "build_candidate",
    "tighten",
    "confirm_unique",
    "fallback",
]
