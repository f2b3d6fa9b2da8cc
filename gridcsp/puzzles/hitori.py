"""ひとりにしてくれ (Hitori) のモデル化・判定・生成

黒マスにできるのは、同じ行か列に同じ数字がもう1つ以上あるマスだけとする。
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..constants import OptionSpec
from ..constraints import Cardinality, Connectivity, Constraint
from ..model import Model
from ..puzzle_builder import Candidate, random_latin_square
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from ..validators import is_connected
from .common import grid_matches, neighbors4, read_grid, read_size

logger = logging.getLogger(__name__)

TYPE = "hitori"

OPTIONS = {
    "density": OptionSpec("normal", choices=("sparse", "normal", "dense")),
    # 指定すると density より優先する黒マスの割合
    "blackRatio": OptionSpec(None, 0.10, 0.38),
    "requireUnique": OptionSpec(False),
}

DENSITY_RATIO = {"sparse": 0.16, "normal": 0.22, "dense": 0.30}

WHITE = 0b01
BLACK = 0b10


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    n = max(4, min(20, max(rows, cols)))
    return n, n


def _numbers(puzzle: Puzzle) -> List[List[int]]:
    rows, cols = read_size(puzzle)
    grid = read_grid(puzzle, "grid", rows, cols)
    for r in range(rows):
        for c in range(cols):
            if not isinstance(grid[r][c], int):
                raise MalformedPuzzleError(f"grid[{r}][{c}] が整数ではありません")
    return grid


def _duplicate_groups(grid: List[List[int]]) -> List[List[Tuple[int, int]]]:
    """行・列ごとに同じ数字が2つ以上並ぶマスの組"""
    rows, cols = len(grid), len(grid[0])
    groups: List[List[Tuple[int, int]]] = []
    lines = [[(r, c) for c in range(cols)] for r in range(rows)]
    lines += [[(r, c) for r in range(rows)] for c in range(cols)]
    for line in lines:
        by_value: Dict[int, List[Tuple[int, int]]] = {}
        for r, c in line:
            by_value.setdefault(grid[r][c], []).append((r, c))
        groups.extend(cells for cells in by_value.values() if len(cells) > 1)
    return groups


def build_model(puzzle: Puzzle) -> Model:
    grid = _numbers(puzzle)
    rows, cols = len(grid), len(grid[0])
    groups = _duplicate_groups(grid)
    pressure = [0] * (rows * cols)
    for cells in groups:
        for r, c in cells:
            pressure[r * cols + c] += len(cells) - 1
    domains = [0b11 if p else WHITE for p in pressure]
    constraints: List[Constraint] = []
    for r in range(rows):
        for c in range(cols):
            for nr, nc in ((r + 1, c), (r, c + 1)):
                if nr < rows and nc < cols:
                    constraints.append(
                        Cardinality([r * cols + c, nr * cols + nc], BLACK, 0, 1, name="adjacent")
                    )
    for cells in groups:
        constraints.append(
            Cardinality([r * cols + c for r, c in cells], WHITE, 0, 1, name="duplicate")
        )
    var_grid = [[r * cols + c for c in range(cols)] for r in range(rows)]
    return Model(
        domains,
        constraints,
        global_constraints=[Connectivity(var_grid, open_value=0)],
        value_order=[0, 1],
        tie_break=lambda board, var: pressure[var],
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
    """白マスに重複がなく、黒マスが隣接せず、白マスがつながっているか"""

    grid = _numbers(puzzle)
    rows, cols = len(grid), len(grid[0])
    if not grid_matches(state, rows, cols):
        return False
    if any(v not in (0, 1) for row in state for v in row):
        return False
    for cells in _duplicate_groups(grid):
        if sum(1 for r, c in cells if state[r][c] == 0) > 1:
            return False
    duplicated = {cell for cells in _duplicate_groups(grid) for cell in cells}
    for r in range(rows):
        for c in range(cols):
            if state[r][c] != 1:
                continue
            if (r, c) not in duplicated:
                return False
            if any(state[nr][nc] == 1 for nr, nc in neighbors4(r, c, rows, cols)):
                return False
    whites = np.array([[1 if v == 0 else 0 for v in row] for row in state], dtype=np.uint8)
    return is_connected(whites)


# ---------------------------------------------------------------------------
# 生成
# ---------------------------------------------------------------------------


def _can_black(marks: List[List[int]], r: int, c: int) -> bool:
    n = len(marks)
    if marks[r][c]:
        return False
    return not any(marks[nr][nc] for nr, nc in neighbors4(r, c, n, n))


def _whites_connected(marks: List[List[int]]) -> bool:
    whites = np.array([[1 - v for v in row] for row in marks], dtype=np.uint8)
    return is_connected(whites)


def _black_mask(n: int, ratio: float, rng: random.Random) -> List[List[int]]:
    """隣接せず白マスの連結を保つように黒マスを置く"""
    marks = [[0] * n for _ in range(n)]
    target = int(n * n * ratio)
    blacks = 0
    for _ in range(n * n * 8):
        if blacks >= target:
            break
        r, c = rng.randrange(n), rng.randrange(n)
        if not _can_black(marks, r, c):
            continue
        marks[r][c] = 1
        if not _whites_connected(marks):
            marks[r][c] = 0
            continue
        blacks += 1
    if blacks < target:
        logger.debug("黒マスが目標数に届かなかったので順に走査して補います")
        for r in range(n):
            for c in range(n):
                if blacks >= target:
                    return marks
                if not _can_black(marks, r, c):
                    continue
                marks[r][c] = 1
                if _whites_connected(marks):
                    blacks += 1
                else:
                    marks[r][c] = 0
    return marks


def _copy_duplicates(
    base: Grid, marks: List[List[int]], rng: random.Random
) -> Optional[Grid]:
    """黒マスの数字を同じ行か列の白マスの数字で上書きする"""
    n = len(base)
    out = [row[:] for row in base]
    for r in range(n):
        for c in range(n):
            if not marks[r][c]:
                continue
            row_opts = [base[r][cc] for cc in range(n) if cc != c and not marks[r][cc]]
            col_opts = [base[rr][c] for rr in range(n) if rr != r and not marks[rr][c]]
            first, second = (row_opts, col_opts) if rng.random() < 0.65 else (col_opts, row_opts)
            pool = first or second
            if not pool:
                return None
            out[r][c] = rng.choice(pool)
    return out


def _ratio(opts: Dict[str, Any]) -> float:
    if opts.get("blackRatio") is not None:
        return opts["blackRatio"]
    return DENSITY_RATIO[opts["density"]]


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    n = rows
    marks = _black_mask(n, _ratio(opts), rng)
    grid = _copy_duplicates(random_latin_square(n, rng), marks, rng)
    if grid is None:
        return None
    return Candidate({"grid": grid}, marks)


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """黒マスを1つだけ置いた盤面"""
    n = rows
    marks = [[0] * n for _ in range(n)]
    marks[0][0] = 1
    base = random_latin_square(n, rng)
    grid = [row[:] for row in base]
    grid[0][0] = base[0][1]
    return Candidate({"grid": grid}, marks)


__all__ = [
    "TYPE",
    "OPTIONS",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "fallback",
]
