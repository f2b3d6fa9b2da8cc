"""グリッドパズル用の制約ソルバーと生成器を公開するパッケージ用モジュール"""

from importlib import import_module
from typing import Any

__all__ = [
    "generate",
    "solve",
    "solve_with_status",
    "count_solutions",
    "is_solved",
    "puzzle_types",
    "SolveOutcome",
    "SearchStatus",
    "MalformedPuzzleError",
    "generate_puzzle",
    "generate_multiple_puzzles",
    "save_puzzle",
    "save_puzzles",
    "load_puzzle",
    "validate_puzzle",
]


def __getattr__(name: str) -> Any:
    """必要になったタイミングで対象モジュールを読み込む"""

    if name in {
        "generate",
        "solve",
        "solve_with_status",
        "count_solutions",
        "is_solved",
        "puzzle_types",
        "SolveOutcome",
    }:
        module = import_module(".api", __name__)
        return getattr(module, name)

    if name in {"generate_puzzle", "generate_multiple_puzzles"}:
        module = import_module(".generator", __name__)
        return getattr(module, name)

    if name in {"save_puzzle", "save_puzzles", "load_puzzle"}:
        module = import_module(".puzzle_io", __name__)
        return getattr(module, name)

    if name == "SearchStatus":
        module = import_module(".search", __name__)
        return getattr(module, name)

    if name == "MalformedPuzzleError":
        module = import_module(".puzzle_types", __name__)
        return getattr(module, name)

    if name == "validate_puzzle":
        module = import_module(".validators", __name__)
        return getattr(module, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name}")
