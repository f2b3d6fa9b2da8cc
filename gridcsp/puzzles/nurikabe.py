"""ぬりかべのモデル化・判定・生成

値 1 が島 (白)、0 が海 (黒)。``clues`` の -1 または ``None`` はヒントなし。
"""

from __future__ import annotations

import logging
import random
from collections import deque
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np

from ..board import Board
from ..constants import OptionSpec
from ..constraints import Cardinality, Connectivity, Constraint, Reductions
from ..model import Model
from ..puzzle_builder import Candidate
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from ..validators import components, has_2x2, is_connected
from .common import clamp_dims, grid_matches, neighbors4, read_grid, read_size

logger = logging.getLogger(__name__)

TYPE = "nurikabe"

OPTIONS = {
    "islandAreaRatio": OptionSpec(0.55, 0.2, 0.8),
    "requireUnique": OptionSpec(False),
}

SEA = 0b01
LAND = 0b10

Cell = Tuple[int, int]


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    return clamp_dims(rows, cols, 3, 25)


def _read_clues(puzzle: Puzzle) -> Dict[Cell, int]:
    rows, cols = read_size(puzzle)
    grid = read_grid(puzzle, "clues", rows, cols)
    clues: Dict[Cell, int] = {}
    for r in range(rows):
        for c in range(cols):
            v = grid[r][c]
            if v is None or v == -1:
                continue
            if not isinstance(v, int) or v < 1:
                raise MalformedPuzzleError(f"clues[{r}][{c}] の値 {v!r} が不正です")
            clues[(r, c)] = v
    return clues


class IslandRules(Constraint):
    """島の大きさと個数に関する盤面全体の推論

    - 確定した島にヒントが2つ以上あれば矛盾
    - ヒントの数字を超えた島は矛盾
    - 大きさが数字に達した島の周囲は海
    - 2つの異なる島に接するマスは海
    - どのヒントからも届かないマスは海
    """

    name = "islands"
    is_global = True

    def __init__(self, rows: int, cols: int, clues: Dict[Cell, int]) -> None:
        super().__init__(range(rows * cols))
        self.rows = rows
        self.cols = cols
        self.clues = clues

    def _land_components(self, board: Board) -> Tuple[List[List[Cell]], Dict[Cell, int]]:
        rows, cols = self.rows, self.cols
        mask = [
            [1 if board.domains[r * cols + c] == LAND else 0 for c in range(cols)]
            for r in range(rows)
        ]
        comps = components(mask)
        owner = {cell: i for i, comp in enumerate(comps) for cell in comp}
        return comps, owner

    def deduce(self, board: Board) -> Optional[Reductions]:
        rows, cols = self.rows, self.cols
        domains = board.domains
        comps, owner = self._land_components(board)
        # 島番号 -> (ヒントの数字, 残りの大きさ)
        clued: Dict[int, Tuple[int, int]] = {}
        for i, comp in enumerate(comps):
            found = [self.clues[cell] for cell in comp if cell in self.clues]
            if len(found) > 1:
                return None
            if found:
                if len(comp) > found[0]:
                    return None
                clued[i] = (found[0], found[0] - len(comp))

        out: Reductions = []
        forced: Set[Cell] = set()
        for i, (_, remaining) in clued.items():
            if remaining:
                continue
            for r, c in comps[i]:
                for cell in neighbors4(r, c, rows, cols):
                    if cell not in owner and cell not in forced:
                        forced.add(cell)

        # 異なるヒント付きの島に挟まれたマス
        touching: Dict[Cell, Set[int]] = {}
        for i in clued:
            for r, c in comps[i]:
                for cell in neighbors4(r, c, rows, cols):
                    if cell not in owner:
                        touching.setdefault(cell, set()).add(i)
        for cell, ids in touching.items():
            if len(ids) > 1:
                forced.add(cell)

        reach = self._reachable(board, comps, owner, clued, touching)
        for r in range(rows):
            for c in range(cols):
                var = r * cols + c
                if (r, c) in reach:
                    continue
                if domains[var] == LAND:
                    return None
                forced.add((r, c))

        for r, c in forced:
            var = r * cols + c
            if domains[var] & LAND:
                if domains[var] == LAND:
                    return None
                out.append((var, SEA))
        return out

    def _reachable(
        self,
        board: Board,
        comps: List[List[Cell]],
        owner: Dict[Cell, int],
        clued: Dict[int, Tuple[int, int]],
        touching: Dict[Cell, Set[int]],
    ) -> Set[Cell]:
        """各ヒントの島が残りの大きさで届くマスの集合"""

        rows, cols = self.rows, self.cols
        domains = board.domains
        reach: Set[Cell] = set()
        for i, (_, remaining) in clued.items():
            dist: Dict[Cell, int] = {cell: 0 for cell in comps[i]}
            queue = deque(comps[i])
            while queue:
                r, c = queue.popleft()
                d = dist[(r, c)]
                if d >= remaining:
                    continue
                for cell in neighbors4(r, c, rows, cols):
                    if cell in dist or not domains[cell[0] * cols + cell[1]] & LAND:
                        continue
                    other = owner.get(cell)
                    if other is not None and other != i and other in clued:
                        continue
                    if touching.get(cell, {i}) - {i}:
                        continue
                    dist[cell] = d + 1
                    queue.append(cell)
            reach.update(dist)
        # 海に決まっているマスは届かなくても構わない
        for r in range(rows):
            for c in range(cols):
                if domains[r * cols + c] == SEA:
                    reach.add((r, c))
        return reach


def _exact_islands(clues: Dict[Cell, int], land: List[List[int]]) -> bool:
    """島ごとにヒントがちょうど1つあり、大きさが数字と一致するか"""
    for comp in components(land):
        found = [clues[cell] for cell in comp if cell in clues]
        if len(found) != 1 or found[0] != len(comp):
            return False
    return all(land[r][c] for r, c in clues)


def build_model(puzzle: Puzzle) -> Model:
    rows, cols = read_size(puzzle)
    clues = _read_clues(puzzle)
    n = rows * cols
    domains = [0b11] * n
    for r, c in clues:
        domains[r * cols + c] = LAND
    constraints: List[Constraint] = []
    for r in range(rows - 1):
        for c in range(cols - 1):
            window = [r * cols + c, r * cols + c + 1, (r + 1) * cols + c, (r + 1) * cols + c + 1]
            constraints.append(Cardinality(window, SEA, 0, 3, name="pool"))
    total = sum(clues.values())
    if total > n:
        raise MalformedPuzzleError("ヒントの合計が盤面のマス数を超えています")
    constraints.append(Cardinality(range(n), LAND, total, total, name="area"))
    var_grid = [[r * cols + c for c in range(cols)] for r in range(rows)]

    def islands_ok(board: Board) -> bool:
        values = board.values()
        land = [values[r * cols : (r + 1) * cols] for r in range(rows)]
        return _exact_islands(clues, land)

    near_clue = [0] * n
    for r, c in clues:
        for nr, nc in neighbors4(r, c, rows, cols):
            near_clue[nr * cols + nc] += 1
    return Model(
        domains,
        constraints,
        global_constraints=[Connectivity(var_grid, open_value=0), IslandRules(rows, cols, clues)],
        validators=[islands_ok],
        tie_break=lambda board, var: near_clue[var],
    )


def decode(puzzle: Puzzle, values: List[int]) -> Grid:
    rows, cols = read_size(puzzle)
    return [values[r * cols : (r + 1) * cols] for r in range(rows)]


def encode(puzzle: Puzzle, state: Any) -> Dict[int, int]:
    rows, cols = read_size(puzzle)
    seed: Dict[int, int] = {}
    if not grid_matches(state, rows, cols):
        return seed
    for r in range(rows):
        for c in range(cols):
            if state[r][c] in (0, 1):
                seed[r * cols + c] = int(state[r][c])
    return seed


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """島の大きさ・海の連結・2x2 の海がないことを確かめる"""

    rows, cols = read_size(puzzle)
    if not grid_matches(state, rows, cols):
        return False
    if any(v not in (0, 1) for row in state for v in row):
        return False
    clues = _read_clues(puzzle)
    if not _exact_islands(clues, state):
        return False
    if has_2x2(state, 0):
        return False
    sea = np.array([[1 - v for v in row] for row in state], dtype=np.uint8)
    return is_connected(sea)


# ---------------------------------------------------------------------------
# 生成
# ---------------------------------------------------------------------------


def _makes_pool(marks: List[List[int]], r: int, c: int) -> bool:
    """(r, c) を海にすると 2x2 の海ができるか"""
    rows, cols = len(marks), len(marks[0])
    for r0 in (r - 1, r):
        for c0 in (c - 1, c):
            if r0 < 0 or c0 < 0 or r0 + 1 >= rows or c0 + 1 >= cols:
                continue
            cells = [(r0, c0), (r0, c0 + 1), (r0 + 1, c0), (r0 + 1, c0 + 1)]
            if all((rr, cc) == (r, c) or marks[rr][cc] == 0 for rr, cc in cells):
                return True
    return False


def _carve_sea(rows: int, cols: int, target: int, rng: random.Random) -> List[List[int]]:
    """1マスから海を広げる。2x2 の海はつくらない"""
    marks = [[1] * cols for _ in range(rows)]
    sr, sc = rng.randrange(rows), rng.randrange(cols)
    marks[sr][sc] = 0
    sea = 1
    frontier = list(neighbors4(sr, sc, rows, cols))
    queued = set(frontier)
    safety = rows * cols * 30
    while sea < target and frontier and safety > 0:
        safety -= 1
        r, c = frontier.pop(rng.randrange(len(frontier)))
        queued.discard((r, c))
        if marks[r][c] == 0 or _makes_pool(marks, r, c):
            continue
        marks[r][c] = 0
        sea += 1
        for cell in neighbors4(r, c, rows, cols):
            if marks[cell[0]][cell[1]] == 1 and cell not in queued:
                queued.add(cell)
                frontier.append(cell)
    return marks


def _clue_grid(marks: List[List[int]], rng: random.Random) -> List[List[int]]:
    rows, cols = len(marks), len(marks[0])
    clues = [[-1] * cols for _ in range(rows)]
    for comp in components(marks):
        r, c = rng.choice(comp)
        clues[r][c] = len(comp)
    return clues


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    target = max(1, min(rows * cols - 1, int(rows * cols * (1 - opts["islandAreaRatio"]))))
    for _ in range(40):
        marks = _carve_sea(rows, cols, target, rng)
        sea = np.array([[1 - v for v in row] for row in marks], dtype=np.uint8)
        if is_connected(sea):
            break
    else:
        logger.warning("海が連結にならなかったため盤面を作り直します")
        return None
    if not any(any(row) for row in marks):
        return None
    return Candidate({"clues": _clue_grid(marks, rng)}, marks)


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """奇数行・奇数列の交点だけを大きさ1の島にした盤面"""
    marks = [[1 if r % 2 and c % 2 else 0 for c in range(cols)] for r in range(rows)]
    return Candidate({"clues": _clue_grid(marks, rng)}, marks)


__all__ = [
    "TYPE",
    "OPTIONS",
    "IslandRules",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "fallback",
]
