"""制約伝播を不動点まで繰り返すモジュール"""

from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, Optional

from .board import Board
from .constraints import Constraint, Reductions
from .model import Model


def _note(stats: Optional[Dict[str, int]], con: Constraint) -> None:
    if stats is not None:
        key = f"rule_{con.name}"
        stats[key] = stats.get(key, 0) + 1


def _apply(
    board: Board, reductions: Reductions, queue: deque, queued: set
) -> Optional[bool]:
    """絞り込みを盤面へ反映する。空の候補が出たら ``None``"""
    changed = False
    domains = board.domains
    for var, mask in reductions:
        if board.restrict(var, mask):
            if domains[var] == 0:
                return None
            changed = True
            if var not in queued:
                queued.add(var)
                queue.append(var)
    return changed


def propagate(
    board: Board,
    model: Model,
    changed: Iterable[int],
    stats: Optional[Dict[str, int]] = None,
) -> bool:
    """変化した変数から伝播を始め、矛盾がなければ True を返す

    局所制約のワークリストが空になったら盤面全体の制約を順に実行し、
    何か絞り込めたら局所制約の処理へ戻る。
    """

    queue: deque = deque()
    queued: set = set()
    for var in changed:
        if var not in queued:
            queued.add(var)
            queue.append(var)

    watchers = model.watchers
    while True:
        while queue:
            var = queue.popleft()
            queued.discard(var)
            for con in watchers[var]:
                reductions = con.deduce(board)
                if reductions is None:
                    _note(stats, con)
                    return False
                if reductions and _apply(board, reductions, queue, queued) is None:
                    _note(stats, con)
                    return False

        progressed = False
        for con in model.global_constraints:
            reductions = con.deduce(board)
            if reductions is None:
                _note(stats, con)
                return False
            if not reductions:
                continue
            result = _apply(board, reductions, queue, queued)
            if result is None:
                _note(stats, con)
                return False
            if result:
                progressed = True
                break
        if not progressed:
            return True


__all__ = ["propagate"]
