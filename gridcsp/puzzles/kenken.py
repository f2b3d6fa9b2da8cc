"""ケンケン (KenKen) のモデル化・判定・生成

ケージは ``{"cells": [[r, c], ...], "op": "add"|"mul"|"sub"|"div"|"none", "target": n}``。
``none`` は1マスのケージで、数字がそのまま答えになる。
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from ..board import mask_of
from ..constants import OptionSpec
from ..constraints import AllDifferent, Cage, Constraint
from ..model import Model
from ..puzzle_builder import Candidate, random_latin_square
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from .common import grid_matches, line_values, neighbors4, read_size

logger = logging.getLogger(__name__)

TYPE = "kenken"

OPTIONS = {"difficulty": OptionSpec("normal", choices=("easy", "normal", "hard"))}

OPS = ("add", "mul", "sub", "div", "none")

# 難易度ごとのケージの平均マス数と優先する演算
CAGE_SIZE = {"easy": 2.0, "normal": 2.3, "hard": 2.7}
PREFER_OPS = {
    "easy": ("add",),
    "normal": ("add", "sub"),
    "hard": ("mul", "add", "div", "sub"),
}

CageSpec = Tuple[str, int, List[Tuple[int, int]]]


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    n = max(3, min(9, max(rows, cols)))
    return n, n


def _read_cages(puzzle: Puzzle) -> Tuple[int, List[CageSpec]]:
    rows, cols = read_size(puzzle)
    if rows != cols:
        raise MalformedPuzzleError("ケンケンの盤面は正方形である必要があります")
    n = rows
    raw = puzzle.get("cages")
    if not isinstance(raw, list):
        raise MalformedPuzzleError("cages フィールドが存在しません")
    owner: Dict[Tuple[int, int], int] = {}
    cages: List[CageSpec] = []
    for i, cage in enumerate(raw):
        if not isinstance(cage, dict):
            raise MalformedPuzzleError(f"cages[{i}] が辞書ではありません")
        op, target, cells_raw = cage.get("op"), cage.get("target"), cage.get("cells")
        if op not in OPS:
            raise MalformedPuzzleError(f"cages[{i}] の演算 {op!r} は未対応です")
        if not isinstance(target, int) or target < 0:
            raise MalformedPuzzleError(f"cages[{i}] の target が不正です")
        if not isinstance(cells_raw, list) or not cells_raw:
            raise MalformedPuzzleError(f"cages[{i}] にマスがありません")
        cells = []
        for cell in cells_raw:
            try:
                r, c = int(cell[0]), int(cell[1])
            except (TypeError, ValueError, IndexError):
                raise MalformedPuzzleError(f"cages[{i}] のマス {cell!r} が読めません") from None
            if not (0 <= r < n and 0 <= c < n):
                raise MalformedPuzzleError(f"cages[{i}] のマス {(r, c)} が盤面の外にあります")
            if (r, c) in owner:
                raise MalformedPuzzleError(f"マス {(r, c)} が複数のケージに含まれています")
            owner[(r, c)] = i
            cells.append((r, c))
        if op in ("sub", "div") and len(cells) != 2:
            raise MalformedPuzzleError(f"cages[{i}] の {op} は2マスのケージだけに使えます")
        if op == "none" and len(cells) != 1:
            raise MalformedPuzzleError(f"cages[{i}] の none は1マスのケージだけに使えます")
        cages.append((op, target, cells))
    if len(owner) != n * n:
        raise MalformedPuzzleError("どのケージにも含まれないマスがあります")
    return n, cages


def build_model(puzzle: Puzzle) -> Model:
    n, cages = _read_cages(puzzle)
    full = mask_of(range(1, n + 1))
    constraints: List[Constraint] = []
    for r in range(n):
        constraints.append(AllDifferent([r * n + c for c in range(n)], full))
    for c in range(n):
        constraints.append(AllDifferent([r * n + c for r in range(n)], full))
    domains = [full] * (n * n)
    for op, target, cells in cages:
        scope = [r * n + c for r, c in cells]
        if len(cells) == 1:
            # 1マスのケージは値が決まっている
            r, c = cells[0]
            domains[r * n + c] = full & (1 << target) if 0 < target <= n else 0
            continue
        constraints.append(Cage(scope, op, target, cells))
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


def _cage_value(op: str, values: List[int]) -> Optional[int]:
    if op == "add":
        return sum(values)
    if op == "mul":
        prod = 1
        for v in values:
            prod *= v
        return prod
    if op == "sub":
        return abs(values[0] - values[1])
    if op == "div":
        hi, lo = max(values), min(values)
        return hi // lo if hi % lo == 0 else None
    return values[0]


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """ラテン方陣になっていて、全ケージの計算結果が一致するか"""

    n, cages = _read_cages(puzzle)
    if not grid_matches(state, n, n):
        return False
    expected = set(range(1, n + 1))
    if any(set(line) != expected for line in line_values(state)):
        return False
    return all(
        _cage_value(op, [state[r][c] for r, c in cells]) == target
        for op, target, cells in cages
    )


# ---------------------------------------------------------------------------
# 生成
# ---------------------------------------------------------------------------


def _choose_op(values: List[int], prefer: Tuple[str, ...]) -> Tuple[str, int]:
    """優先順に演算を試し、このケージで使えるものを選ぶ"""
    if len(values) == 1:
        return "none", values[0]
    for op in prefer + ("add",):
        if op in ("sub", "div") and len(values) != 2:
            continue
        target = _cage_value(op, values)
        if target is None or (op == "sub" and target == 0):
            continue
        return op, target
    return "add", sum(values)


def _grow_cages(
    n: int, average: float, rng: random.Random
) -> List[List[Tuple[int, int]]]:
    """左上から順に幅優先でケージを育てる"""
    seen = [[False] * n for _ in range(n)]
    cages = []
    for r in range(n):
        for c in range(n):
            if seen[r][c]:
                continue
            cells = [(r, c)]
            seen[r][c] = True
            size = max(1, min(n, round(average + rng.random() - 0.5)))
            while len(cells) < size:
                frontier = [
                    cell
                    for cr, cc in cells
                    for cell in neighbors4(cr, cc, n, n)
                    if not seen[cell[0]][cell[1]]
                ]
                if not frontier:
                    break
                pick = rng.choice(frontier)
                seen[pick[0]][pick[1]] = True
                cells.append(pick)
            cages.append(cells)
    return cages


def _cage_dict(op: str, target: int, cells: List[Tuple[int, int]]) -> Dict[str, Any]:
    return {"cells": [[r, c] for r, c in cells], "op": op, "target": target}


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    n = rows
    solution = random_latin_square(n, rng)
    difficulty = opts["difficulty"]
    cages = []
    for cells in _grow_cages(n, CAGE_SIZE[difficulty], rng):
        values = [solution[r][c] for r, c in cells]
        op, target = _choose_op(values, PREFER_OPS[difficulty])
        cages.append(_cage_dict(op, target, cells))
    return Candidate({"cages": cages}, solution)


def tighten(candidate: Candidate, rng: random.Random) -> bool:
    """複数マスのケージを1つ選び、1マスのケージに分ける"""
    cages = candidate.fields["cages"]
    multi = [i for i, cage in enumerate(cages) if len(cage["cells"]) > 1]
    if not multi:
        return False
    cage = cages.pop(rng.choice(multi))
    for r, c in cage["cells"]:
        cages.append(_cage_dict("none", candidate.solution[r][c], [(r, c)]))
    logger.debug("ケージを分割しました: 残り %d 個", len(cages))
    return True


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """全マスを1マスのケージにした盤面"""
    n = rows
    solution = random_latin_square(n, rng)
    cages = [_cage_dict("none", solution[r][c], [(r, c)]) for r in range(n) for c in range(n)]
    return Candidate({"cages": cages}, solution)


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
