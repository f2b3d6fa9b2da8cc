"""外部から呼び出す生成・解答・判定の窓口"""

from __future__ import annotations

import copy
import logging
import random
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, cast

from .constants import DEFAULT_COUNT_TIMEOUT_S, DEFAULT_SOLVE_TIMEOUT_S
from .generator import generate_puzzle
from .puzzle_types import MalformedPuzzleError, Puzzle
from .puzzles import get_plugin
from .puzzles import puzzle_types as _registered_types
from .search import SearchStatus, search

logger = logging.getLogger(__name__)

_SIZE_RE = re.compile(r"^\s*(\d+)\s*[xX×]\s*(\d+)\s*$")


@dataclass
class SolveOutcome:
    """``solve_with_status`` の戻り値"""

    status: SearchStatus
    solution: Any = None
    stats: Dict[str, int] = field(default_factory=dict)


def parse_size(size: Any) -> Tuple[int, int]:
    """盤面サイズ指定を (行数, 列数) に直す

    整数 ``n`` は ``n x n``、文字列は ``"RxC"``、タプルや辞書も受け付ける。
    範囲への丸めは生成側で行う。
    """

    if isinstance(size, bool):
        raise ValueError(f"盤面サイズとして解釈できません: {size!r}")
    if isinstance(size, int):
        return size, size
    if isinstance(size, str):
        m = _SIZE_RE.match(size)
        if m is None:
            raise ValueError(f"盤面サイズは 'RxC' 形式で指定してください: {size!r}")
        return int(m.group(1)), int(m.group(2))
    if isinstance(size, Mapping):
        rows, cols = size.get("rows"), size.get("cols")
    elif isinstance(size, (tuple, list)) and len(size) == 2:
        rows, cols = size
    else:
        raise ValueError(f"盤面サイズとして解釈できません: {size!r}")
    if not isinstance(rows, int) or not isinstance(cols, int):
        raise ValueError(f"盤面サイズには整数を指定してください: {size!r}")
    return rows, cols


def generate(
    puzzle_type: str,
    size: Any,
    options: Optional[Mapping[str, Any]] = None,
    *,
    seed: int | None = None,
    timeout_s: float | None = None,
) -> Puzzle:
    """盤面を1つ生成する。返す辞書には解答 ``solution`` が含まれる"""
    rows, cols = parse_size(size)
    return cast(
        Puzzle,
        generate_puzzle(
            puzzle_type, rows, cols, options=options, seed=seed, timeout_s=timeout_s
        ),
    )


def solve_with_status(
    puzzle: Puzzle,
    timeout_s: float = DEFAULT_SOLVE_TIMEOUT_S,
    *,
    state: Any = None,
    seed: int | None = None,
) -> SolveOutcome:
    """盤面を解き、探索の状態と統計を合わせて返す

    :param state: プレイヤーの途中盤面。埋まっているマスを先に確定させて探索し、
        矛盾して解がなければ途中盤面を使わずに解き直す
    :param seed: 値の試行順を決める乱数シード。同じシードなら同じ解を返す
    """

    plugin = get_plugin(puzzle.get("type", ""))
    model = plugin.build_model(puzzle)
    start = time.perf_counter()

    fixed: Dict[int, int] = {}
    if state is not None:
        fixed = plugin.encode(puzzle, copy.deepcopy(state))
    rng = random.Random(seed) if seed is not None else None
    result = search(model, timeout_s=timeout_s, rng=rng, seed=fixed or None)

    if fixed and result.status == SearchStatus.EXHAUSTED:
        logger.info("途中盤面から解けなかったため最初から解き直します")
        remaining = max(0.0, timeout_s - (time.perf_counter() - start))
        rng = random.Random(seed) if seed is not None else None
        result = search(model, timeout_s=remaining, rng=rng)

    solution = None
    if result.solution is not None:
        solution = plugin.decode(puzzle, result.solution)
    return SolveOutcome(result.status, solution, result.stats)


def solve(
    puzzle: Puzzle,
    timeout_s: float = DEFAULT_SOLVE_TIMEOUT_S,
    *,
    state: Any = None,
    seed: int | None = None,
) -> Any:
    """盤面を解いて解答を返す。解がないか時間切れなら ``None``"""
    return solve_with_status(puzzle, timeout_s, state=state, seed=seed).solution


def count_solutions(
    puzzle: Puzzle,
    limit: int = 2,
    timeout_s: float = DEFAULT_COUNT_TIMEOUT_S,
) -> int:
    """解を ``limit`` 個まで数える

    時間切れのときはそこまでに見つかった個数を返すので、
    戻り値は実際の解の数の下限になる。
    """

    plugin = get_plugin(puzzle.get("type", ""))
    result = search(
        plugin.build_model(puzzle), mode="count", limit=limit, timeout_s=timeout_s
    )
    if result.status == SearchStatus.TIMED_OUT:
        logger.info("解の数え上げが時間切れになりました (%d 個まで確認)", result.count)
    return min(result.count, limit)


def is_solved(puzzle: Puzzle, state: Any) -> bool:
    """プレイヤー盤面が完成しているかを探索なしで判定する

    盤面データや ``state`` の形が壊れていれば False を返す。
    ``state`` は書き換えない。
    """

    try:
        plugin = get_plugin(puzzle.get("type", ""))
        return bool(plugin.is_solved(puzzle, copy.deepcopy(state)))
    except MalformedPuzzleError as exc:
        logger.debug("判定できない盤面です: %s", exc)
        return False
    except TypeError as exc:
        # 数値以外が混じった盤面など
        logger.debug("盤面の値の型が不正です: %s", exc)
        return False


def puzzle_types() -> List[str]:
    """登録されているパズルの種類名の一覧"""
    return _registered_types()


__all__ = [
    "SolveOutcome",
    "parse_size",
    "generate",
    "solve",
    "solve_with_status",
    "count_solutions",
    "is_solved",
    "puzzle_types",
]
