"""パズルを保存・読み込みする処理をまとめたモジュール"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Sequence

from .puzzle_types import Puzzle


def _file_name(kind: Any) -> str:
    return f"map_{kind if isinstance(kind, str) else 'puzzle'}.json"


def save_puzzle(puzzle: Puzzle, directory: str | Path = "data") -> Path:
    """単一のパズルを JSON 形式で保存する"""
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    file_path = path / _file_name(puzzle.get("type"))
    with file_path.open("w", encoding="utf-8") as fp:
        json.dump(puzzle, fp, ensure_ascii=False, indent=2)
    return file_path


def save_puzzles(puzzles: Sequence[Puzzle], directory: str | Path = "data") -> Path:
    """複数パズルをまとめて JSON 保存する

    すべて同じ種類なら ``map_<種類>.json``、混在していれば ``map_mixed.json``。
    """
    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    kinds = {p.get("type") for p in puzzles}
    kind = kinds.pop() if len(kinds) == 1 else "mixed"
    file_path = path / _file_name(kind)
    with file_path.open("w", encoding="utf-8") as fp:
        json.dump(list(puzzles), fp, ensure_ascii=False, indent=2)
    return file_path


def load_puzzle(file_path: str | Path) -> Puzzle | List[Puzzle]:
    """``save_puzzle`` / ``save_puzzles`` で保存した JSON を読み込む"""
    with Path(file_path).open("r", encoding="utf-8") as fp:
        data = json.load(fp)
    if not isinstance(data, (dict, list)):
        raise ValueError(f"{file_path} はパズルの JSON ではありません")
    return data


__all__ = ["save_puzzle", "save_puzzles", "load_puzzle"]
