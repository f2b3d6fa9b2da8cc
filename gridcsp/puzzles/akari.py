"""美術館 (Akari) のモデル化・判定・生成"""

from __future__ import annotations

import math
import random
from typing import Any, Dict, List, Optional, Tuple

from ..constants import OptionSpec
from ..constraints import Cardinality, Constraint
from ..model import Model
from ..puzzle_builder import Candidate
from ..puzzle_types import MalformedPuzzleError, Puzzle
from .common import clamp_dims, grid_matches, neighbors4, read_grid, read_size

TYPE = "akari"

OPTIONS = {
    # None なら盤面サイズから決める
    "blockDensity": OptionSpec(None, 0.08, 0.3),
    "clueDensity": OptionSpec(0.6, 0.0, 1.0),
    "symmetry": OptionSpec("none", choices=("none", "rotational", "mirror")),
    "requireUnique": OptionSpec(True),
}

# これより大きい盤面では一意性を確かめない
UNIQUE_CELL_LIMIT = 400

BULB = 0b10

Cell = Tuple[int, int]


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    return clamp_dims(rows, cols, 3, 30)


def _read_blocks(puzzle: Puzzle) -> Tuple[List[List[bool]], Dict[Cell, int]]:
    rows, cols = read_size(puzzle)
    grid = read_grid(puzzle, "grid", rows, cols)
    blocks = [[False] * cols for _ in range(rows)]
    clues: Dict[Cell, int] = {}
    for r in range(rows):
        for c in range(cols):
            cell = grid[r][c]
            if not isinstance(cell, dict):
                raise MalformedPuzzleError(f"grid[{r}][{c}] がセルの辞書ではありません")
            if not cell.get("block"):
                continue
            blocks[r][c] = True
            clue = cell.get("clue")
            if clue is None:
                continue
            if not isinstance(clue, int) or not 0 <= clue <= 4:
                raise MalformedPuzzleError(f"grid[{r}][{c}] のヒント {clue!r} は 0-4 の範囲外です")
            clues[(r, c)] = clue
    return blocks, clues


def _segments(blocks: List[List[bool]]) -> List[List[Cell]]:
    """黒マスで区切られた白マスの横・縦の区間"""
    rows, cols = len(blocks), len(blocks[0])
    result: List[List[Cell]] = []
    for r in range(rows):
        run: List[Cell] = []
        for c in range(cols + 1):
            if c < cols and not blocks[r][c]:
                run.append((r, c))
            elif run:
                result.append(run)
                run = []
    for c in range(cols):
        run = []
        for r in range(rows + 1):
            if r < rows and not blocks[r][c]:
                run.append((r, c))
            elif run:
                result.append(run)
                run = []
    return result


def _sight(blocks: List[List[bool]]) -> Dict[Cell, List[Cell]]:
    """各白マスから見えるマス (自分を含む)"""
    seen: Dict[Cell, List[Cell]] = {}
    for seg in _segments(blocks):
        for cell in seg:
            seen.setdefault(cell, [])
            seen[cell].extend(x for x in seg if x not in seen[cell])
    return seen


def build_model(puzzle: Puzzle) -> Model:
    rows, cols = read_size(puzzle)
    blocks, clues = _read_blocks(puzzle)
    whites = [(r, c) for r in range(rows) for c in range(cols) if not blocks[r][c]]
    index = {cell: i for i, cell in enumerate(whites)}
    constraints: List[Constraint] = []
    for seg in _segments(blocks):
        if len(seg) > 1:
            constraints.append(
                Cardinality([index[x] for x in seg], BULB, 0, 1, name="segment")
            )
    sight = _sight(blocks)
    for cell in whites:
        constraints.append(
            Cardinality([index[x] for x in sight[cell]], BULB, 1, name="lit")
        )
    for (r, c), clue in clues.items():
        around = [index[x] for x in neighbors4(r, c, rows, cols) if x in index]
        constraints.append(Cardinality(around, BULB, clue, clue, name="clue"))
    reach = [len(sight[cell]) for cell in whites]

    return Model(
        [0b11] * len(whites),
        constraints,
        value_order=[1, 0],
        tie_break=lambda board, var: -reach[var],
    )


def decode(puzzle: Puzzle, values: List[int]) -> List[List[bool]]:
    rows, cols = read_size(puzzle)
    blocks, _ = _read_blocks(puzzle)
    result = [[False] * cols for _ in range(rows)]
    it = iter(values)
    for r in range(rows):
        for c in range(cols):
            if not blocks[r][c]:
                result[r][c] = next(it) == 1
    return result


def encode(puzzle: Puzzle, state: Any) -> Dict[int, int]:
    rows, cols = read_size(puzzle)
    blocks, _ = _read_blocks(puzzle)
    seed: Dict[int, int] = {}
    if not grid_matches(state, rows, cols):
        return seed
    var = 0
    for r in range(rows):
        for c in range(cols):
            if blocks[r][c]:
                continue
            if state[r][c] is True:
                seed[var] = 1
            var += 1
    return seed


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """電球同士が照らし合わず、全白マスが照らされ、数字と一致するか"""

    rows, cols = read_size(puzzle)
    if not grid_matches(state, rows, cols):
        return False
    blocks, clues = _read_blocks(puzzle)
    for r in range(rows):
        for c in range(cols):
            if state[r][c] and blocks[r][c]:
                return False
    for seg in _segments(blocks):
        if sum(1 for r, c in seg if state[r][c]) > 1:
            return False
    for cell, seen in _sight(blocks).items():
        if not any(state[r][c] for r, c in seen):
            return False
    for (r, c), clue in clues.items():
        if sum(1 for nr, nc in neighbors4(r, c, rows, cols) if state[nr][nc]) != clue:
            return False
    return True


# ---------------------------------------------------------------------------
# 生成
# ---------------------------------------------------------------------------


def _makes_2x2(blocks: List[List[bool]], r: int, c: int) -> bool:
    rows, cols = len(blocks), len(blocks[0])
    for r0 in (r - 1, r):
        for c0 in (c - 1, c):
            if r0 < 0 or c0 < 0 or r0 + 1 >= rows or c0 + 1 >= cols:
                continue
            if all(blocks[r0 + dr][c0 + dc] for dr in (0, 1) for dc in (0, 1)):
                return True
    return False


def _cap_corridors(blocks: List[List[bool]], max_len: int) -> None:
    """長い白の通路を黒マスで区切る"""
    for seg in _segments(blocks):
        if len(seg) <= max_len:
            continue
        splits = -(-len(seg) // max_len) - 1
        for i in range(1, splits + 1):
            pos = max(1, min(len(seg) - 2, (i * len(seg)) // (splits + 1)))
            r, c = seg[pos]
            blocks[r][c] = True


def _build_blocks(
    rows: int, cols: int, density: float, symmetry: str, rng: random.Random
) -> List[List[bool]]:
    """格子状の種に揺らぎを加えて黒マスを目標密度まで置く"""
    step_r = max(3, rows // 5)
    step_c = max(3, cols // 5)
    r_off = 1 + rng.randrange(step_r - 1)
    c_off = 1 + rng.randrange(step_c - 1)
    blocks = [
        [(r + r_off) % step_r == 0 and (c + c_off) % step_c == 0 for c in range(cols)]
        for r in range(rows)
    ]
    target = int(rows * cols * density)
    placed = sum(map(sum, blocks))
    guard = 0
    while placed < target and guard < rows * cols * 10:
        guard += 1
        r, c = rng.randrange(rows), rng.randrange(cols)
        if blocks[r][c]:
            continue
        cells = [(r, c)]
        if symmetry == "mirror":
            cells.append((r, cols - 1 - c))
        elif symmetry == "rotational":
            cells.append((rows - 1 - r, cols - 1 - c))
        cells = [(rr, cc) for rr, cc in dict.fromkeys(cells) if not blocks[rr][cc]]
        for rr, cc in cells:
            blocks[rr][cc] = True
        if any(_makes_2x2(blocks, rr, cc) for rr, cc in cells):
            for rr, cc in cells:
                blocks[rr][cc] = False
            continue
        placed = sum(map(sum, blocks))
    _cap_corridors(blocks, max(6, min(rows, cols) // 3))
    for r in range(rows):
        for c in range(cols):
            if blocks[r][c] and _makes_2x2(blocks, r, c):
                blocks[r][c] = False
    return blocks


def _place_bulbs(blocks: List[List[bool]]) -> List[List[bool]]:
    """左上から順に、まだ暗いマスへ電球を置いていく"""
    rows, cols = len(blocks), len(blocks[0])
    sight = _sight(blocks)
    bulbs = [[False] * cols for _ in range(rows)]
    lit = [[False] * cols for _ in range(rows)]
    for r in range(rows):
        for c in range(cols):
            if blocks[r][c] or lit[r][c]:
                continue
            bulbs[r][c] = True
            for rr, cc in sight[(r, c)]:
                lit[rr][cc] = True
    return bulbs


def _clue_of(bulbs: List[List[bool]], r: int, c: int) -> int:
    rows, cols = len(bulbs), len(bulbs[0])
    return sum(1 for nr, nc in neighbors4(r, c, rows, cols) if bulbs[nr][nc])


def _grid(
    blocks: List[List[bool]], bulbs: List[List[bool]], prob: float, rng: random.Random
) -> List[List[Dict[str, Any]]]:
    grid: List[List[Dict[str, Any]]] = []
    for r, row in enumerate(blocks):
        out = []
        for c, block in enumerate(row):
            if not block:
                out.append({})
            elif rng.random() < prob:
                out.append({"block": True, "clue": _clue_of(bulbs, r, c)})
            else:
                out.append({"block": True})
        grid.append(out)
    return grid


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    density = opts["blockDensity"]
    if density is None:
        density = min(0.22, max(0.14, math.log10(max(10, rows * cols)) * 0.045))
    blocks = _build_blocks(rows, cols, density, opts["symmetry"], rng)
    if all(all(row) for row in blocks):
        return None
    bulbs = _place_bulbs(blocks)
    prob = opts["clueDensity"]
    return Candidate(
        {"grid": _grid(blocks, bulbs, prob, rng)}, bulbs, {"clueDensity": prob}
    )


def tighten(candidate: Candidate, rng: random.Random) -> bool:
    """ヒントのない黒マスに一定の確率で数字を付け足す"""
    grid = candidate.fields["grid"]
    bare = [
        (r, c)
        for r, row in enumerate(grid)
        for c, cell in enumerate(row)
        if cell.get("block") and "clue" not in cell
    ]
    if not bare:
        return False
    prob = candidate.extra.get("clueDensity", 0.6)
    candidate.extra["clueDensity"] = min(1.0, prob + 0.1)
    added = [cell for cell in bare if rng.random() < 0.1 / max(0.1, 1.0 - prob)]
    if not added:
        added = [rng.choice(bare)]
    for r, c in added:
        grid[r][c]["clue"] = _clue_of(candidate.solution, r, c)
    return True


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    """一つおきに黒マスを置き、すべての黒マスに数字を付けた盤面"""
    blocks = [[False] * cols for _ in range(rows)]
    for r in range(1, rows - 1, 2):
        for c in range(1, cols - 1, 2):
            blocks[r][c] = True
    bulbs = _place_bulbs(blocks)
    return Candidate({"grid": _grid(blocks, bulbs, 1.0, rng)}, bulbs)


__all__ = [
    "TYPE",
    "OPTIONS",
    "UNIQUE_CELL_LIMIT",
    "clamp_size",
    "build_model",
    "decode",
    "encode",
    "is_solved",
    "build_candidate",
    "tighten",
    "fallback",
]
