"""パズルの種類ごとのプラグインを登録するパッケージ

各モジュールは ``TYPE`` と ``OPTIONS``、および ``build_model`` /
``decode`` / ``encode`` / ``is_solved`` / ``build_candidate`` /
``fallback`` を備える。``tighten`` と ``confirm_unique`` は任意。
"""

from __future__ import annotations

from types import ModuleType
from typing import Dict, List

from ..puzzle_types import MalformedPuzzleError
from . import (
    akari,
    hashi,
    hitori,
    kakuro,
    kenken,
    nonograms,
    nurikabe,
    skyscrapers,
    slitherlink,
    sudoku,
)

REGISTRY: Dict[str, ModuleType] = {
    module.TYPE: module
    for module in (
        sudoku,
        kakuro,
        hashi,
        akari,
        hitori,
        nurikabe,
        slitherlink,
        nonograms,
        kenken,
        skyscrapers,
    )
}


def get_plugin(kind: str) -> ModuleType:
    """種類名からプラグインモジュールを返す。未登録ならエラー"""
    try:
        return REGISTRY[kind]
    except KeyError:
        raise MalformedPuzzleError(
            f"未対応のパズル種類です: {kind!r} (対応: {', '.join(REGISTRY)})"
        ) from None


def puzzle_types() -> List[str]:
    return list(REGISTRY)


__all__ = ["REGISTRY", "get_plugin", "puzzle_types"]
