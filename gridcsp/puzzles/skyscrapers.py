"""ビルディング (Skyscrapers) のモデル化・判定・生成

盤面外のヒント ``top``/``bottom``/``left``/``right`` は 0 ならヒントなし。
``mode`` が ``"count"`` なら見えるビルの数、``"sum"`` なら見えるビルの高さの合計。
"""

from __future__ import annotations

import random
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..board import mask_of
from ..constants import OptionSpec
from ..constraints import AllDifferent, Constraint, LineVisibility
from ..model import Model
from ..puzzle_builder import Candidate, random_latin_square
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from .common import grid_matches, line_values, read_size

TYPE = "skyscrapers"

OPTIONS = {
    "difficulty": OptionSpec("normal", choices=("easy", "normal", "hard")),
    "mode": OptionSpec("count", choices=("count", "sum")),
}

KEEP_RATIO = {"easy": 0.9, "normal": 0.65, "hard": 0.45}

SIDES = ("top", "bottom", "left", "right")


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    n = max(3, min(9, max(rows, cols)))
    return n, n


def visible(line: Sequence[int], mode: str = "count") -> int:
    """手前から見えるビルの数 (または高さの合計)"""
    tallest = 0
    score = 0
    for h in line:
        if h > tallest:
            tallest = h
            score += 1 if mode == "count" else h
    return score


def _read_clues(puzzle: Puzzle) -> Tuple[int, str, Dict[str, List[int]]]:
    rows, cols = read_size(puzzle)
    if rows != cols:
        raise MalformedPuzzleError("ビルディングの盤面は正方形である必要があります")
    n = rows
    mode = puzzle.get("mode", "count")
    if mode not in ("count", "sum"):
        raise MalformedPuzzleError(f"mode {mode!r} は count か sum で指定してください")
    clues: Dict[str, List[int]] = {}
    for side in SIDES:
        values = puzzle.get(side)
        if values is None:
            values = [0] * n
        if not isinstance(values, list) or len(values) != n:
            raise MalformedPuzzleError(f"{side} の長さが盤面サイズと一致しません")
        if not all(isinstance(v, int) and v >= 0 for v in values):
            raise MalformedPuzzleError(f"{side} に不正な値があります")
        clues[side] = values
    return n, mode, clues


def build_model(puzzle: Puzzle) -> Model:
    n, mode, clues = _read_clues(puzzle)
    full = mask_of(range(1, n + 1))
    constraints: List[Constraint] = []
    for r in range(n):
        scope = [r * n + c for c in range(n)]
        constraints.append(AllDifferent(scope, full))
        if clues["left"][r] or clues["right"][r]:
            constraints.append(
                LineVisibility(scope, clues["left"][r], clues["right"][r], mode)
            )
    for c in range(n):
        scope = [r * n + c for r in range(n)]
        constraints.append(AllDifferent(scope, full))
        if clues["top"][c] or clues["bottom"][c]:
            constraints.append(
                LineVisibility(scope, clues["top"][c], clues["bottom"][c], mode)
            )
    return Model([full] * (n * n), constraints)


def decode(puzzle: Puzzle, values: List[int]) -> Grid:
    n, _ = read_size(puzzle)
    return [values[r * n : (r + 1) * n] for r in range(n)]


def encode(puzzle: Puzzle, state: Any) -> Dict[int, int]:
    n, _ = read_size(puzzle)
    seed: Dict[int, int] = {}
    if not grid_matches(state, n, n):
        return seed
    for r in range(n):
        for c in range(n):
            v = state[r][c]
            if isinstance(v, int) and 1 <= v <= n:
                seed[r * n + c] = v
    return seed


def clues_for(grid: Grid, mode: str) -> Dict[str, List[int]]:
    n = len(grid)
    cols = [[grid[r][c] for r in range(n)] for c in range(n)]
    return {
        "top": [visible(col, mode) for col in cols],
        "bottom": [visible(col[::-1], mode) for col in cols],
        "left": [visible(row, mode) for row in grid],
        "right": [visible(row[::-1], mode) for row in grid],
    }


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    n, mode, clues = _read_clues(puzzle)
    if not grid_matches(state, n, n):
        return False
    expected = set(range(1, n + 1))
    if any(set(line) != expected for line in line_values(state)):
        return False
    actual = clues_for(state, mode)
    return all(
        given == 0 or given == seen
        for side in SIDES
        for given, seen in zip(clues[side], actual[side])
    )


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    n = rows
    mode = opts["mode"]
    solution = random_latin_square(n, rng)
    full = clues_for(solution, mode)
    keep = KEEP_RATIO[opts["difficulty"]]
    fields: Dict[str, Any] = {"mode": mode}
    for side in SIDES:
        fields[side] = [v if rng.random() < keep else 0 for v in full[side]]
    return Candidate(fields, solution, {"full": full})


def tighten(candidate: Candidate, rng: random.Random) -> bool:
    """隠したヒントを2つまで表示する"""
    full = candidate.extra.get("full") or clues_for(candidate.solution, candidate.fields["mode"])
    hidden = [
        (side, i) for side in SIDES for i, v in enumerate(candidate.fields[side]) if v == 0
    ]
    if not hidden:
        return False
    rng.shuffle(hidden)
    for side, i in hidden[:2]:
        candidate.fields[side][i] = full[side][i]
    return True


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """すべてのヒントを表示した盤面"""
    n = rows
    mode = opts["mode"]
    solution = random_latin_square(n, rng)
    fields: Dict[str, Any] = {"mode": mode}
    fields.update(clues_for(solution, mode))
    return Candidate(fields, solution)


__all__ = [
    "TYPE",
    "OPTIONS",
    "visible",
    "clues_for",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "tighten",
    "fallback",
]
