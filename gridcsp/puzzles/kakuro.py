"""カックロのモデル化・判定・生成

盤面 ``grid`` は上端1行と左端1列をヒント用の帯として含む。
各セルは ``{"block": True, "sumRight": n, "sumDown": m}`` のような辞書で、
空の辞書 ``{}`` が数字を書き込むマスを表す。
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from ..board import mask_of
from ..constants import OptionSpec
from ..constraints import AllDifferent, Constraint, SumDistinct
from ..model import Model
from ..puzzle_builder import Candidate
from ..puzzle_types import Grid, MalformedPuzzleError, Puzzle
from ..search import search
from .common import clamp_dims, grid_matches, read_grid, read_size

logger = logging.getLogger(__name__)

TYPE = "kakuro"

OPTIONS = {
    "maxRunLength": OptionSpec(4, 2, 9),
    "requireUnique": OptionSpec(False),
}

DIGITS = mask_of(range(1, 10))

Mask = List[List[bool]]  # True がブロック
Run = Tuple[int, List[Tuple[int, int]]]  # (合計, マス一覧)


def clamp_size(rows: int, cols: int) -> Tuple[int, int]:
    return clamp_dims(rows, cols, 5, 15)


def _is_fill(cell: Any) -> bool:
    return isinstance(cell, dict) and not cell.get("block") and not (
        cell.get("sumRight") or cell.get("sumDown")
    )


def _runs(puzzle: Puzzle) -> Tuple[List[List[Any]], List[Run], List[Tuple[int, int]]]:
    """ヒントから連続区間を読み取る。壊れた参照はその場でエラーにする"""

    rows, cols = read_size(puzzle)
    grid = read_grid(puzzle, "grid", rows, cols)
    runs: List[Run] = []
    for r in range(rows):
        for c in range(cols):
            cell = grid[r][c]
            if not isinstance(cell, dict):
                raise MalformedPuzzleError(f"grid[{r}][{c}] がセルの辞書ではありません")
            for key, dr, dc in (("sumRight", 0, 1), ("sumDown", 1, 0)):
                target = cell.get(key)
                if not target:
                    continue
                if not isinstance(target, int) or target < 0:
                    raise MalformedPuzzleError(f"grid[{r}][{c}] の {key} が不正です")
                cells = []
                rr, cc = r + dr, c + dc
                while rr < rows and cc < cols and _is_fill(grid[rr][cc]):
                    cells.append((rr, cc))
                    rr, cc = rr + dr, cc + dc
                if len(cells) < 2:
                    raise MalformedPuzzleError(
                        f"grid[{r}][{c}] の {key} が長さ 2 以上の区間を指していません"
                    )
                runs.append((target, cells))
    fills = [(r, c) for r in range(rows) for c in range(cols) if _is_fill(grid[r][c])]
    covered = {cell for _, cells in runs for cell in cells}
    for cell in fills:
        if cell not in covered:
            raise MalformedPuzzleError(f"マス {cell} がどのヒントにも含まれていません")
    return grid, runs, fills


def build_model(puzzle: Puzzle) -> Model:
    _, runs, fills = _runs(puzzle)
    index = {cell: i for i, cell in enumerate(fills)}
    constraints: List[Constraint] = [
        SumDistinct([index[cell] for cell in cells], target) for target, cells in runs
    ]
    return Model([DIGITS] * len(fills), constraints)


def decode(puzzle: Puzzle, values: List[int]) -> Grid:
    rows, cols = read_size(puzzle)
    _, _, fills = _runs(puzzle)
    result = [[0] * cols for _ in range(rows)]
    for (r, c), v in zip(fills, values):
        result[r][c] = v
    return result


def encode(puzzle: Puzzle, state: Any) -> Dict[int, int]:
    rows, cols = read_size(puzzle)
    _, _, fills = _runs(puzzle)
    seed: Dict[int, int] = {}
    if not grid_matches(state, rows, cols):
        return seed
    for i, (r, c) in enumerate(fills):
        v = state[r][c]
        if isinstance(v, int) and 1 <= v <= 9:
            seed[i] = v
    return seed


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """全マスに 1-9 が入り、各区間で数字が重複せず合計がヒントと一致するか"""

    rows, cols = read_size(puzzle)
    if not grid_matches(state, rows, cols):
        return False
    _, runs, fills = _runs(puzzle)
    for r, c in fills:
        v = state[r][c]
        if not isinstance(v, int) or not 1 <= v <= 9:
            return False
    for target, cells in runs:
        digits = [state[r][c] for r, c in cells]
        if len(set(digits)) != len(digits) or sum(digits) != target:
            return False
    return True


# ---------------------------------------------------------------------------
# 生成: ブロック配置
# ---------------------------------------------------------------------------


def _segments(line: List[bool]) -> List[Tuple[int, int]]:
    """ブロックで区切られた空きマスの区間 (start, end) を返す"""
    result = []
    i = 0
    n = len(line)
    while i < n:
        while i < n and line[i]:
            i += 1
        start = i
        while i < n and not line[i]:
            i += 1
        if i > start:
            result.append((start, i - 1))
    return result


def _transpose(mask: Mask) -> Mask:
    return [list(col) for col in zip(*mask)]


def _seed_lattice(h: int, w: int, rng: random.Random) -> Mask:
    """格子状のブロックに少しだけ揺らぎを加えた初期配置"""
    step_r = 3 if h <= 8 else 4
    step_c = 3 if w <= 8 else 4
    r_off = 1 + rng.randrange(step_r - 1)
    c_off = 1 + rng.randrange(step_c - 1)
    mask = [
        [(r + r_off) % step_r == 0 and (c + c_off) % step_c == 0 for c in range(w)]
        for r in range(h)
    ]
    extra = int(h * w * (0.10 if h <= 8 or w <= 8 else 0.08))
    if h > 2 and w > 2:
        for _ in range(extra):
            mask[rng.randint(1, h - 2)][rng.randint(1, w - 2)] = True
    return mask


def _cap_rows(mask: Mask, max_len: int) -> bool:
    """長すぎる区間にブロックを等間隔で入れる"""
    changed = False
    for row in mask:
        for start, end in _segments(row):
            length = end - start + 1
            if length <= max_len:
                continue
            splits = -(-length // max_len) - 1
            for i in range(1, splits + 1):
                pos = start + (i * length) // (splits + 1)
                pos = max(start + 2, min(end - 2, pos))
                if not row[pos]:
                    row[pos] = True
                    changed = True
    return changed


def _ensure_row_runs(mask: Mask) -> None:
    """各行に長さ 2 以上の区間が1つはあるようにする"""
    w = len(mask[0])
    for row in mask:
        segs = _segments(row)
        if any(end - start >= 1 for start, end in segs):
            continue
        # 区間がないので中央付近のブロックを外して区間を作る
        mid = max(0, min(w - 2, w // 2))
        row[mid] = False
        row[mid + 1] = False


def _eliminate_singletons(mask: Mask) -> None:
    """横にも縦にも区間を持たないマスをブロックにする"""
    h, w = len(mask), len(mask[0])
    for _ in range(10):
        changed = False
        for r in range(h):
            for c in range(w):
                if mask[r][c]:
                    continue
                across = (c > 0 and not mask[r][c - 1]) or (c + 1 < w and not mask[r][c + 1])
                down = (r > 0 and not mask[r - 1][c]) or (r + 1 < h and not mask[r + 1][c])
                if not across and not down:
                    mask[r][c] = True
                    changed = True
        if not changed:
            return


def _build_mask(h: int, w: int, max_len: int, rng: random.Random) -> Mask:
    mask = _seed_lattice(h, w, rng)
    for _ in range(20):
        changed = _cap_rows(mask, max_len)
        t = _transpose(mask)
        if _cap_rows(t, max_len):
            changed = True
        mask = _transpose(t)
        if not changed:
            break
    _ensure_row_runs(mask)
    t = _transpose(mask)
    _ensure_row_runs(t)
    mask = _transpose(t)
    _eliminate_singletons(mask)
    return mask


def _mask_ok(mask: Mask, max_len: int) -> bool:
    """区間数・埋まり具合・最大長を確認する"""
    h, w = len(mask), len(mask[0])
    across = [s for row in mask for s in _segments(row) if s[1] > s[0]]
    down = [s for col in _transpose(mask) for s in _segments(col) if s[1] > s[0]]
    if len(across) < max(2, int(h * 0.75)) or len(down) < max(2, int(w * 0.75)):
        return False
    fill = sum(1 for row in mask for v in row if not v)
    if fill / max(1, h * w) < 0.45:
        return False
    return all(e - s + 1 <= max_len for s, e in across + down)


def _fallback_mask(h: int, w: int) -> Mask:
    """中央に縦横1本ずつブロックを通しただけの配置"""
    mid_r = max(1, min(h - 2, h // 2))
    mid_c = max(1, min(w - 2, w // 2))
    mask = [[r == mid_r or c == mid_c for c in range(w)] for r in range(h)]
    _eliminate_singletons(mask)
    return mask


# ---------------------------------------------------------------------------
# 生成: 数字の埋め込みとヒント
# ---------------------------------------------------------------------------


def _mask_runs(mask: Mask) -> List[List[Tuple[int, int]]]:
    h, w = len(mask), len(mask[0])
    runs = []
    for r in range(h):
        for s, e in _segments(mask[r]):
            if e > s:
                runs.append([(r, c) for c in range(s, e + 1)])
    for c in range(w):
        for s, e in _segments([mask[r][c] for r in range(h)]):
            if e > s:
                runs.append([(r, c) for r in range(s, e + 1)])
    return runs


def _fill_digits(mask: Mask, rng: random.Random) -> Optional[Grid]:
    """各区間で数字が重複しないよう乱数順で埋める"""
    h, w = len(mask), len(mask[0])
    cells = [(r, c) for r in range(h) for c in range(w) if not mask[r][c]]
    index = {cell: i for i, cell in enumerate(cells)}
    runs = _mask_runs(mask)
    degree = [0] * len(cells)
    for run in runs:
        for cell in run:
            degree[index[cell]] += len(run)
    model = Model(
        [DIGITS] * len(cells),
        [AllDifferent([index[cell] for cell in run], DIGITS) for run in runs],
        tie_break=lambda board, var: degree[var],
    )
    result = search(model, rng=rng, timeout_s=2.0)
    if result.solution is None:
        return None
    digits = [[0] * w for _ in range(h)]
    for (r, c), v in zip(cells, result.solution):
        digits[r][c] = v
    return digits


def _diagonal_digits(mask: Mask) -> Grid:
    """``(r + c) % 9 + 1`` で埋める。長さ 9 以下の区間なら数字が重複しない"""
    return [[(r + c) % 9 + 1 for c in range(len(mask[0]))] for r in range(len(mask))]


def _compose(mask: Mask, digits: Grid) -> Tuple[List[List[Dict[str, Any]]], Grid]:
    """内側の配置と数字からヒント帯つきの盤面と解を作る"""
    h, w = len(mask), len(mask[0])
    grid: List[List[Dict[str, Any]]] = [[{"block": True} for _ in range(w + 1)] for _ in range(h + 1)]
    solution = [[0] * (w + 1) for _ in range(h + 1)]
    for r in range(h):
        for c in range(w):
            if not mask[r][c]:
                grid[r + 1][c + 1] = {}
                solution[r + 1][c + 1] = digits[r][c]
    for run in _mask_runs(mask):
        total = sum(digits[r][c] for r, c in run)
        (r0, c0), (r1, _) = run[0], run[1]
        if r0 == r1:
            grid[r0 + 1][c0]["sumRight"] = total
        else:
            grid[r0][c0 + 1]["sumDown"] = total
    return grid, solution


def build_candidate(
    rows: int, cols: int, opts: Dict[str, Any], rng: random.Random
) -> Optional[Candidate]:
    h, w = rows - 1, cols - 1
    max_len = opts["maxRunLength"]
    for _ in range(80):
        mask = _build_mask(h, w, max_len, rng)
        if _mask_ok(mask, max_len):
            break
    else:
        logger.warning("ブロック配置が条件を満たさないため再試行します")
        return None
    digits = _fill_digits(mask, rng)
    if digits is None:
        return None
    grid, solution = _compose(mask, digits)
    return Candidate({"grid": grid}, solution)


def fallback(rows: int, cols: int, opts: Dict[str, Any], rng: random.Random) -> Candidate:
    h, w = rows - 1, cols - 1
    mask = _fallback_mask(h, w)
    digits = _fill_digits(mask, rng)
    if digits is None:
        logger.info("探索で数字を埋められなかったため斜め順の数字を使います")
        digits = _diagonal_digits(mask)
    grid, solution = _compose(mask, digits)
    return Candidate({"grid": grid}, solution)


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
