"""各パズルのプラグインで共有する小さな読み取り補助"""

from __future__ import annotations

from typing import Any, Iterator, List, Sequence, Tuple

from ..constants import MAX_GRID_SIZE, MIN_GRID_SIZE
from ..model import Model
from ..puzzle_types import MalformedPuzzleError, Puzzle
from ..search import SearchResult, search


def read_size(puzzle: Puzzle) -> Tuple[int, int]:
    """``size`` フィールドから (行数, 列数) を取り出す"""
    size = puzzle.get("size")
    if not isinstance(size, dict):
        raise MalformedPuzzleError("size フィールドが存在しません")
    rows = size.get("rows")
    cols = size.get("cols")
    if not isinstance(rows, int) or not isinstance(cols, int) or rows <= 0 or cols <= 0:
        raise MalformedPuzzleError("size の値が不正です")
    return rows, cols


def read_grid(puzzle: Puzzle, key: str, rows: int, cols: int) -> List[List[Any]]:
    """``rows`` x ``cols`` の二次元配列を取り出す。形が違えばエラー"""
    grid = puzzle.get(key)
    if not isinstance(grid, list) or len(grid) != rows:
        raise MalformedPuzzleError(f"{key} の行数が盤面サイズと一致しません")
    for row in grid:
        if not isinstance(row, list) or len(row) != cols:
            raise MalformedPuzzleError(f"{key} の列数が盤面サイズと一致しません")
    return grid


def grid_matches(state: Any, rows: int, cols: int) -> bool:
    """プレイヤー盤面が指定の形の二次元配列か"""
    if not isinstance(state, list) or len(state) != rows:
        return False
    return all(isinstance(row, list) and len(row) == cols for row in state)


def clamp_dims(
    rows: int, cols: int, lo: int = MIN_GRID_SIZE, hi: int = MAX_GRID_SIZE
) -> Tuple[int, int]:
    return max(lo, min(hi, rows)), max(lo, min(hi, cols))


def neighbors4(r: int, c: int, rows: int, cols: int) -> Iterator[Tuple[int, int]]:
    for nr, nc in ((r - 1, c), (r + 1, c), (r, c - 1), (r, c + 1)):
        if 0 <= nr < rows and 0 <= nc < cols:
            yield nr, nc


def unique_in_budget(model: Model, timeout_s: float) -> bool:
    """時間内に解がちょうど1つと確かめられたら True"""
    result: SearchResult = search(model, mode="count", limit=2, timeout_s=timeout_s)
    return result.complete and result.count == 1


def line_values(grid: Sequence[Sequence[int]]) -> List[List[int]]:
    """行と列を順に並べた一覧 (ラテン方陣の検査用)"""
    rows = [list(row) for row in grid]
    cols = [list(col) for col in zip(*grid)]
    return rows + cols


__all__ = [
    "read_size",
    "read_grid",
    "grid_matches",
    "clamp_dims",
    "neighbors4",
    "unique_in_budget",
    "line_values",
]
