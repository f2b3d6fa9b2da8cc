"""盤面全体を見て判定する検証関数をまとめたモジュール

連結性・橋の交差・単一ループなど、局所的な伝播では表しにくい条件を扱う。
塗りつぶし系の処理は Numba でコンパイルして高速化している。
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
from numba import njit

from .puzzle_types import Puzzle

Point = Tuple[int, int]


@njit(cache=True)
def _flood_fill(open_mask: np.ndarray, sr: int, sc: int) -> np.ndarray:
    """``open_mask`` が 1 のマスを (sr, sc) から 4 近傍でたどる"""

    rows, cols = open_mask.shape
    seen = np.zeros((rows, cols), dtype=np.uint8)
    if open_mask[sr, sc] == 0:
        return seen
    stack_r = np.empty(rows * cols, dtype=np.int64)
    stack_c = np.empty(rows * cols, dtype=np.int64)
    dr = (-1, 1, 0, 0)
    dc = (0, 0, -1, 1)
    stack_r[0] = sr
    stack_c[0] = sc
    top = 1
    seen[sr, sc] = 1
    while top > 0:
        top -= 1
        r = stack_r[top]
        c = stack_c[top]
        for k in range(4):
            nr = r + dr[k]
            nc = c + dc[k]
            if nr < 0 or nr >= rows or nc < 0 or nc >= cols:
                continue
            if open_mask[nr, nc] == 0 or seen[nr, nc] == 1:
                continue
            seen[nr, nc] = 1
            stack_r[top] = nr
            stack_c[top] = nc
            top += 1
    return seen


@njit(cache=True)
def _forced_open(
    can: np.ndarray, req: np.ndarray, seen: np.ndarray, ar: int, ac: int
) -> np.ndarray:
    """閉じると確定済みの開きマスが分断されるマスを 1 で返す"""

    rows, cols = can.shape
    forced = np.zeros((rows, cols), dtype=np.uint8)
    work = can.copy()
    for r in range(rows):
        for c in range(cols):
            if req[r, c] == 1 or seen[r, c] == 0:
                continue
            work[r, c] = 0
            reach = _flood_fill(work, ar, ac)
            for rr in range(rows):
                split = False
                for cc in range(cols):
                    if req[rr, cc] == 1 and reach[rr, cc] == 0:
                        split = True
                        break
                if split:
                    forced[r, c] = 1
                    break
            work[r, c] = 1
    return forced


@njit(cache=True)
def _has_2x2(grid: np.ndarray, value: int) -> bool:
    """``value`` だけでできた 2x2 の塊があれば True"""

    rows, cols = grid.shape
    for r in range(rows - 1):
        for c in range(cols - 1):
            if (
                grid[r, c] == value
                and grid[r + 1, c] == value
                and grid[r, c + 1] == value
                and grid[r + 1, c + 1] == value
            ):
                return True
    return False


def is_connected(open_mask: np.ndarray) -> bool:
    """1 のマスがすべて 4 近傍でつながっているか。1 が無ければ True"""

    mask = np.ascontiguousarray(open_mask, dtype=np.uint8)
    cells = np.argwhere(mask == 1)
    if len(cells) == 0:
        return True
    seen = _flood_fill(mask, int(cells[0][0]), int(cells[0][1]))
    return int(seen.sum()) == len(cells)


def has_2x2(grid: Sequence[Sequence[int]], value: int) -> bool:
    arr = np.ascontiguousarray(grid, dtype=np.int64)
    if arr.ndim != 2 or arr.shape[0] < 2 or arr.shape[1] < 2:
        return False
    return bool(_has_2x2(arr, value))


def components(mask: Sequence[Sequence[int]]) -> List[List[Point]]:
    """1 のマスを連結成分ごとに分けて返す"""

    rows = len(mask)
    cols = len(mask[0]) if rows else 0
    seen = [[False] * cols for _ in range(rows)]
    result: List[List[Point]] = []
    for r in range(rows):
        for c in range(cols):
            if not mask[r][c] or seen[r][c]:
                continue
            seen[r][c] = True
            stack = [(r, c)]
            comp: List[Point] = []
            while stack:
                cr, cc = stack.pop()
                comp.append((cr, cc))
                for nr, nc in ((cr - 1, cc), (cr + 1, cc), (cr, cc - 1), (cr, cc + 1)):
                    if 0 <= nr < rows and 0 <= nc < cols:
                        if mask[nr][nc] and not seen[nr][nc]:
                            seen[nr][nc] = True
                            stack.append((nr, nc))
            result.append(comp)
    return result


def edges_cross(a1: Point, a2: Point, b1: Point, b2: Point) -> bool:
    """水平線分と垂直線分が端点以外の点で交わるか

    座標は (行, 列)。端点を共有する場合や同じ向きの線分は交差とみなさない。
    """

    a_horizontal = a1[0] == a2[0]
    b_horizontal = b1[0] == b2[0]
    if a_horizontal == b_horizontal:
        return False
    h1, h2 = (a1, a2) if a_horizontal else (b1, b2)
    v1, v2 = (b1, b2) if a_horizontal else (a1, a2)
    row = h1[0]
    col = v1[1]
    c_lo, c_hi = sorted((h1[1], h2[1]))
    r_lo, r_hi = sorted((v1[0], v2[0]))
    return c_lo < col < c_hi and r_lo < row < r_hi


def loop_degrees(
    horizontal: Sequence[Sequence[bool]], vertical: Sequence[Sequence[bool]]
) -> Tuple[List[List[int]], int]:
    """各頂点の次数と線の総数を返す"""

    rows = len(vertical)
    cols = len(horizontal[0]) if horizontal else 0
    degrees = [[0 for _ in range(cols + 1)] for _ in range(rows + 1)]
    edge_count = 0
    for r in range(rows + 1):
        for c in range(cols):
            if horizontal[r][c]:
                edge_count += 1
                degrees[r][c] += 1
                degrees[r][c + 1] += 1
    for r in range(rows):
        for c in range(cols + 1):
            if vertical[r][c]:
                edge_count += 1
                degrees[r][c] += 1
                degrees[r + 1][c] += 1
    return degrees, edge_count


def is_single_loop(
    horizontal: Sequence[Sequence[bool]], vertical: Sequence[Sequence[bool]]
) -> bool:
    """線が分岐のない1本のループになっているか"""

    rows = len(vertical)
    cols = len(horizontal[0]) if horizontal else 0
    degrees, edge_count = loop_degrees(horizontal, vertical)
    start = None
    for r in range(rows + 1):
        for c in range(cols + 1):
            d = degrees[r][c]
            if d not in (0, 2):
                return False
            if d == 2 and start is None:
                start = (r, c)
    if start is None:
        return False

    def neighbors(r: int, c: int) -> List[Point]:
        result = []
        if c < cols and horizontal[r][c]:
            result.append((r, c + 1))
        if c > 0 and horizontal[r][c - 1]:
            result.append((r, c - 1))
        if r < rows and vertical[r][c]:
            result.append((r + 1, c))
        if r > 0 and vertical[r - 1][c]:
            result.append((r - 1, c))
        return result

    # 次数がすべて 2 なので、頂点をたどった数と線の数が一致すれば1本
    visited = {start}
    queue = [start]
    while queue:
        r, c = queue.pop()
        for nxt in neighbors(r, c):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return len(visited) == edge_count


def validate_puzzle(puzzle: Puzzle) -> None:
    """盤面データと埋め込み解の整合性を確認する

    問題がなければ何も返さず、不整合があれば ``ValueError`` を送出する。
    """

    from .puzzles import get_plugin

    kind = puzzle.get("type")
    if not isinstance(kind, str):
        raise ValueError("type フィールドが存在しません")
    plugin = get_plugin(kind)

    size_dict = puzzle.get("size")
    if not isinstance(size_dict, dict):
        raise ValueError("size フィールドが存在しません")
    if size_dict.get("rows", 0) <= 0 or size_dict.get("cols", 0) <= 0:
        raise ValueError("size の値が不正です")

    # 盤面から制約を組み立てられるかを先に確認する
    plugin.build_model(puzzle)

    solution = puzzle.get("solution")
    if solution is None:
        raise ValueError("solution フィールドが存在しません")
    if not plugin.is_solved(puzzle, solution):
        raise ValueError("solution が盤面のヒントと一致しません")

    uniqueness = puzzle.get("uniqueness")
    if uniqueness not in ("unique", "uncertain"):
        raise ValueError("uniqueness フィールドが不正です")


def _warmup_numba() -> None:
    """Numba コンパイルを事前に行うウォームアップ関数"""

    # 1x1 のダミー配列を使い JIT を走らせる
    dummy: np.ndarray = np.ones((1, 1), dtype=np.uint8)
    seen = _flood_fill(dummy, 0, 0)
    _forced_open(dummy, dummy, seen, 0, 0)
    _has_2x2(np.zeros((1, 1), dtype=np.int64), 0)


_warmup_numba()


__all__ = [
    "is_connected",
    "has_2x2",
    "components",
    "edges_cross",
    "loop_degrees",
    "is_single_loop",
    "validate_puzzle",
]
