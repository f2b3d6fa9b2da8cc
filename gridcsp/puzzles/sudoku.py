"""数独のモデル化・判定・生成"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from ..board import mask_of
from ..constants import ALLOWED_DIFFICULTIES, OptionSpec
from ..constraints import AllDifferent, Constraint
from ..model import Model
from ..puzzle_builder import Candidate, reduce_clues, shuffled_cells
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from ..search import search
from .common import grid_matches, read_grid, read_size, unique_in_budget

logger = logging.getLogger(__name__)

TYPE = "sudoku"

OPTIONS = {"difficulty": OptionSpec("normal", choices=ALLOWED_DIFFICULTIES)}

# 一辺の長さ -> (ブロックの行数, ブロックの列数)
BOXES = {4: (2, 2), 6: (2, 3), 9: (3, 3)}

# 9x9 盤でのヒント数の範囲。小さい盤ではセル数に比例させる
GIVEN_RANGES = {
    "easy": (38, 45),
    "normal": (32, 37),
    "hard": (26, 31),
    "expert": (22, 26),
}

# ヒント削減時に1回の一意性確認へ使う秒数
_REDUCE_TIMEOUT_S = 0.3


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    n = min(BOXES, key=lambda k: (abs(k - max(rows, cols)), k))
    return n, n


def _box_of(puzzle: Puzzle, n: int) -> Tuple[int, int]:
    box = puzzle.get("box")
    if box is None:
        if n not in BOXES:
            raise MalformedPuzzleError(f"{n}x{n} の数独のブロック形状が指定されていません")
        return BOXES[n]
    br, bc = box.get("rows"), box.get("cols")
    if not isinstance(br, int) or not isinstance(bc, int) or br * bc != n:
        raise MalformedPuzzleError("box の大きさが盤面と一致しません")
    return br, bc


def _units(n: int, br: int, bc: int) -> List[List[Tuple[int, int]]]:
    """行・列・ブロックのマス一覧"""
    units = [[(r, c) for c in range(n)] for r in range(n)]
    units += [[(r, c) for r in range(n)] for c in range(n)]
    for top in range(0, n, br):
        for left in range(0, n, bc):
            units.append(
                [(top + dr, left + dc) for dr in range(br) for dc in range(bc)]
            )
    return units


def build_model(puzzle: Puzzle) -> Model:
    rows, cols = read_size(puzzle)
    if rows != cols:
        raise MalformedPuzzleError("数独の盤面は正方形である必要があります")
    n = rows
    br, bc = _box_of(puzzle, n)
    givens = read_grid(puzzle, "givens", n, n)
    full = mask_of(range(1, n + 1))
    domains: List[int] = []
    for r in range(n):
        for c in range(n):
            v = givens[r][c]
            if not isinstance(v, int) or not 0 <= v <= n:
                raise MalformedPuzzleError(f"givens[{r}][{c}] の値 {v!r} が範囲外です")
            domains.append(1 << v if v else full)
    constraints: List[Constraint] = [
        AllDifferent([r * n + c for r, c in unit], full) for unit in _units(n, br, bc)
    ]
    return Model(domains, constraints)


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


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """全マスが埋まり、行・列・ブロックに同じ数字がなく、ヒントと一致するか"""

    n, _ = read_size(puzzle)
    if not grid_matches(state, n, n):
        return False
    br, bc = _box_of(puzzle, n)
    givens = puzzle.get("givens") or [[0] * n for _ in range(n)]
    expected = set(range(1, n + 1))
    for r in range(n):
        for c in range(n):
            if givens[r][c] and state[r][c] != givens[r][c]:
                return False
    for unit in _units(n, br, bc):
        if {state[r][c] for r, c in unit} != expected:
            return False
    return True


def _given_range(n: int, difficulty: str) -> Tuple[int, int]:
    lo, hi = GIVEN_RANGES[difficulty]
    scale = (n * n) / 81
    return max(1, round(lo * scale)), max(1, round(hi * scale))


def _full_grid(n: int, rng: random.Random) -> Optional[Grid]:
    """空盤面を乱数順で解いて完成盤面を作る"""
    puzzle = {"size": {"rows": n, "cols": n}, "givens": [[0] * n for _ in range(n)]}
    result = search(build_model(puzzle), rng=rng, timeout_s=2.0)
    if result.solution is None:
        return None
    return decode(puzzle, result.solution)


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    n = rows
    br, bc = BOXES[n]
    solution = _full_grid(n, rng)
    if solution is None:
        logger.warning("完成盤面の作成に失敗しました")
        return None
    lo, hi = _given_range(n, opts["difficulty"])
    target = rng.randint(lo, hi)
    box = {"rows": br, "cols": bc}

    def unique(givens: List[List[Any]]) -> bool:
        model = build_model({"size": {"rows": n, "cols": n}, "box": box, "givens": givens})
        return unique_in_budget(model, _REDUCE_TIMEOUT_S)

    givens = reduce_clues(
        solution, shuffled_cells(n, n, rng), unique, min_hint=target, hidden=0
    )
    return Candidate({"box": box, "givens": givens}, solution)


def tighten(candidate: Candidate, rng: random.Random) -> bool:
    """空きマスを1つ選んで答えを書き込む"""
    givens = candidate.fields["givens"]
    empty = [(r, c) for r, row in enumerate(givens) for c, v in enumerate(row) if not v]
    if not empty:
        return False
    r, c = rng.choice(empty)
    givens[r][c] = candidate.solution[r][c]
    return True


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """規則的な完成盤面から各ブロック1マスだけ空けた盤面"""
    n = rows
    br, bc = BOXES[n]
    solution = [[(bc * (r % br) + r // br + c) % n + 1 for c in range(n)] for r in range(n)]
    givens = [row[:] for row in solution]
    for top in range(0, n, br):
        for left in range(0, n, bc):
            givens[top + rng.randrange(br)][left + rng.randrange(bc)] = 0
    return Candidate({"box": {"rows": br, "cols": bc}, "givens": givens}, solution)


__all__ = [
    "TYPE",
    "OPTIONS",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "tighten",
    "fallback",
]
