"""共通で使う型エイリアスと例外をまとめたモジュール

Python 標準ライブラリの ``types`` モジュールと名前が衝突しないよう、
このファイル名を ``puzzle_types`` としている。
"""

from typing import Any, Dict, List, Tuple

# Puzzle データを表す辞書型。キーは文字列で値は任意の型を許容
Puzzle = Dict[str, Any]

# 盤面座標 (行, 列)
Cell = Tuple[int, int]

# 0/1 や数字を並べた二次元配列
Grid = List[List[int]]


class MalformedPuzzleError(ValueError):
    """盤面データが壊れていて制約を構築できないときに送出する例外"""


__all__ = ["Puzzle", "Cell", "Grid", "MalformedPuzzleError"]
