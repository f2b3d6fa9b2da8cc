"""パズル構築用のヘルパー関数をまとめたモジュール"""

from __future__ import annotations

# datetime モジュールから UTC 定数も合わせてインポート
from datetime import datetime, UTC
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .constants import _evaluate_difficulty
from .puzzle_types import Cell, Grid, Puzzle

# JSON スキーマのバージョン
SCHEMA_VERSION = "3.0"

# id の先頭に付ける種類ごとの略号
ID_PREFIX = {
    "sudoku": "sd",
    "kakuro": "kk",
    "hashi": "hs",
    "akari": "ak",
    "hitori": "ht",
    "nurikabe": "nk",
    "slitherlink": "sl",
    "nonograms": "ng",
    "kenken": "kn",
    "skyscrapers": "sk",
}


@dataclass
class Candidate:
    """生成途中の盤面。``fields`` は盤面固有のキー、``solution`` は埋め込み解"""

    fields: Dict[str, Any]
    solution: Any
    # tighten などが使う作業用の情報。出力には含めない
    extra: Dict[str, Any] = field(default_factory=dict)


def random_latin_square(n: int, rng: random.Random) -> Grid:
    """行・列・数字をシャッフルしたラテン方陣を返す"""

    base = [[(r + c) % n + 1 for c in range(n)] for r in range(n)]
    rows = list(range(n))
    cols = list(range(n))
    symbols = list(range(1, n + 1))
    rng.shuffle(rows)
    rng.shuffle(cols)
    rng.shuffle(symbols)
    return [[symbols[base[r][c] - 1] for c in cols] for r in rows]


def count_hints(clues: Sequence[Sequence[Any]], hidden: Any = None) -> int:
    return sum(1 for row in clues for v in row if v != hidden)


def reduce_clues(
    clues: Sequence[Sequence[Any]],
    order: Sequence[Cell],
    is_unique: Callable[[List[List[Any]]], bool],
    *,
    min_hint: int,
    hidden: Any = None,
) -> List[List[Any]]:
    """ヒントを ``order`` の順に外し、一意性が崩れたら元に戻す

    :param order: 外すのを試す位置の順番。先頭ほど外れやすい
    :param is_unique: ヒント配列を受け取り、解が一意なら True を返す関数
    :param min_hint: 残すヒント数の下限
    :param hidden: ヒントなしを表す値
    """

    result: List[List[Any]] = [list(row) for row in clues]
    hint_count = count_hints(result, hidden)
    for r, c in order:
        if hint_count <= min_hint:
            break
        original = result[r][c]
        if original == hidden:
            continue
        result[r][c] = hidden
        if is_unique(result):
            hint_count -= 1
        else:
            result[r][c] = original
    return result


def build_puzzle_dict(
    *,
    kind: str,
    rows: int,
    cols: int,
    fields: Dict[str, Any],
    solution: Any,
    unique: bool,
    solver_stats: Dict[str, Any],
    generation_params: Dict[str, Any],
    seed_hash: str,
    difficulty: Optional[str] = None,
    partial: bool = False,
    reason: str | None = None,
) -> Puzzle:
    """パズル用の辞書オブジェクトを構築するヘルパー関数"""

    # timezone-aware な UTC 時刻を取得する
    timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    steps = int(solver_stats.get("steps", 0))
    max_depth = int(solver_stats.get("max_depth", 0))
    label = difficulty or "normal"
    puzzle: Puzzle = {
        "schemaVersion": SCHEMA_VERSION,
        "id": f"{ID_PREFIX.get(kind, kind)}_{rows}x{cols}_{label}_{timestamp}",
        "type": kind,
        "size": {"rows": rows, "cols": cols},
        "difficulty": difficulty,
    }
    puzzle.update(fields)
    puzzle.update(
        {
            "solution": solution,
            "uniqueness": "unique" if unique else "uncertain",
            "solverStats": {
                "steps": steps,
                "maxDepth": max_depth,
                "backtracks": int(solver_stats.get("backtracks", 0)),
                "solutions": int(solver_stats.get("solutions", 0)),
                "status": solver_stats.get("status", "exhausted"),
            },
            "difficultyEval": _evaluate_difficulty(steps, max_depth),
            "generationParams": generation_params,
            "seedHash": seed_hash,
            "createdBy": "gridcsp-gen-v1",
            # ISO8601 形式の UTC 日付文字列を保存
            "createdAt": datetime.now(UTC).date().isoformat(),
            "partial": partial,
        }
    )
    if partial and reason is not None:
        puzzle["reason"] = reason
    return puzzle


def shuffled_cells(rows: int, cols: int, rng: random.Random) -> List[Tuple[int, int]]:
    cells = [(r, c) for r in range(rows) for c in range(cols)]
    rng.shuffle(cells)
    return cells


__all__ = [
    "SCHEMA_VERSION",
    "Candidate",
    "random_latin_square",
    "count_hints",
    "reduce_clues",
    "build_puzzle_dict",
    "shuffled_cells",
]
