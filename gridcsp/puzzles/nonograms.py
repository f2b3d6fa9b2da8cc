"""お絵かきロジック (Nonograms) のモデル化・判定・生成"""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..constants import OptionSpec
from ..constraints import Constraint, LinePattern
from ..model import Model
from ..puzzle_builder import Candidate
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from .common import clamp_dims, grid_matches, read_size

TYPE = "nonograms"

OPTIONS = {
    "density": OptionSpec("normal", choices=("sparse", "normal", "dense")),
    "requireUnique": OptionSpec(False),
}

FILL_PROB = {"sparse": 0.33, "normal": 0.45, "dense": 0.58}


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    return clamp_dims(rows, cols, 3, 30)


def runs_of(line: Sequence[int]) -> List[int]:
    """黒マスの連続数の並び"""
    runs: List[int] = []
    count = 0
    for v in line:
        if v == 1:
            count += 1
        elif count:
            runs.append(count)
            count = 0
    if count:
        runs.append(count)
    return runs


def _read_clues(puzzle: Puzzle, key: str, count: int, length: int) -> List[List[int]]:
    raw = puzzle.get(key)
    if not isinstance(raw, list) or len(raw) != count:
        raise MalformedPuzzleError(f"{key} の数が盤面サイズと一致しません")
    result = []
    for i, runs in enumerate(raw):
        if not isinstance(runs, list) or not all(isinstance(k, int) and k >= 0 for k in runs):
            raise MalformedPuzzleError(f"{key}[{i}] の値が不正です")
        runs = [k for k in runs if k > 0]
        if sum(runs) + max(0, len(runs) - 1) > length:
            raise MalformedPuzzleError(f"{key}[{i}] の合計が列の長さを超えています")
        result.append(runs)
    return result


def _clues(puzzle: Puzzle) -> Tuple[List[List[int]], List[List[int]]]:
    rows, cols = read_size(puzzle)
    return (
        _read_clues(puzzle, "rowClues", rows, cols),
        _read_clues(puzzle, "colClues", cols, rows),
    )


def build_model(puzzle: Puzzle) -> Model:
    rows, cols = read_size(puzzle)
    row_clues, col_clues = _clues(puzzle)
    constraints: List[Constraint] = []
    for r, runs in enumerate(row_clues):
        constraints.append(LinePattern([r * cols + c for c in range(cols)], runs))
    for c, runs in enumerate(col_clues):
        constraints.append(LinePattern([r * cols + c for r in range(rows)], runs))
    return Model([0b11] * (rows * cols), constraints)


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
            if state[r][c] == 1:
                seed[r * cols + c] = 1
    return seed


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    rows, cols = read_size(puzzle)
    if not grid_matches(state, rows, cols):
        return False
    row_clues, col_clues = _clues(puzzle)
    if any(v not in (0, 1) for row in state for v in row):
        return False
    if any(runs_of(state[r]) != row_clues[r] for r in range(rows)):
        return False
    return all(
        runs_of([state[r][c] for r in range(rows)]) == col_clues[c] for c in range(cols)
    )


def _fields(grid: Grid) -> Dict[str, Any]:
    rows, cols = len(grid), len(grid[0])
    return {
        "rowClues": [runs_of(row) for row in grid],
        "colClues": [runs_of([grid[r][c] for r in range(rows)]) for c in range(cols)],
    }


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    p = FILL_PROB[opts["density"]]
    grid = [[1 if rng.random() < p else 0 for _ in range(cols)] for _ in range(rows)]
    # 空の行・列ができないように1マスずつ塗る
    for row in grid:
        if not any(row):
            row[rng.randrange(cols)] = 1
    for c in range(cols):
        if not any(grid[r][c] for r in range(rows)):
            grid[rng.randrange(rows)][c] = 1
    return Candidate(_fields(grid), grid)


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """全マス黒の盤面"""
    grid = [[1] * cols for _ in range(rows)]
    return Candidate(_fields(grid), grid)


__all__ = [
    "TYPE",
    "OPTIONS",
    "runs_of",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "fallback",
]
