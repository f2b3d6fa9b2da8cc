"""変数ごとの候補集合と取り消しログを保持する盤面モジュール

変数はすべて整数の通し番号で扱い、候補集合は ``int`` のビットマスクで表す。
ビット ``v`` が立っていれば値 ``v`` がまだ候補に残っている。
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Tuple


def mask_of(values: Sequence[int]) -> int:
    """値の列からビットマスクを作る"""
    mask = 0
    for v in values:
        mask |= 1 << v
    return mask


def iter_bits(mask: int) -> Iterator[int]:
    """ビットマスクに含まれる値を小さい順に返す"""
    while mask:
        low = mask & -mask
        yield low.bit_length() - 1
        mask ^= low


def min_value(mask: int) -> int:
    return (mask & -mask).bit_length() - 1


def max_value(mask: int) -> int:
    return mask.bit_length() - 1


def range_mask(lo: int, hi: int) -> int:
    """``lo`` 以上 ``hi`` 以下の値を表すマスク。空区間なら 0"""
    if hi < lo or hi < 0:
        return 0
    lo = max(lo, 0)
    return ((1 << (hi + 1)) - 1) & ~((1 << lo) - 1)


class Board:
    """探索中の候補集合と取り消しログ

    ``restrict`` は候補を絞ることしかできず、元に戻すのは ``undo`` だけ。
    1 回の探索呼び出しごとに新しいインスタンスを作り、共有しない。
    """

    def __init__(self, domains: Sequence[int]) -> None:
        self.domains: List[int] = list(domains)
        # (変数番号, 変更前の候補) を変更順に記録する
        self.trail: List[Tuple[int, int]] = []

    def __len__(self) -> int:
        return len(self.domains)

    def domain_of(self, var: int) -> int:
        return self.domains[var]

    def size_of(self, var: int) -> int:
        """残っている候補の数"""
        return self.domains[var].bit_count()

    def is_assigned(self, var: int) -> bool:
        dom = self.domains[var]
        return dom != 0 and dom & (dom - 1) == 0

    def value_of(self, var: int) -> Optional[int]:
        """候補が 1 つに決まっていればその値、そうでなければ ``None``"""
        dom = self.domains[var]
        if dom == 0 or dom & (dom - 1):
            return None
        return dom.bit_length() - 1

    def has_empty_domain(self) -> bool:
        return any(dom == 0 for dom in self.domains)

    def is_complete(self) -> bool:
        return all(dom != 0 and dom & (dom - 1) == 0 for dom in self.domains)

    def values(self) -> List[int]:
        """全変数の値を返す。未確定の変数は -1"""
        result = []
        for dom in self.domains:
            if dom != 0 and dom & (dom - 1) == 0:
                result.append(dom.bit_length() - 1)
            else:
                result.append(-1)
        return result

    def restrict(self, var: int, mask: int) -> bool:
        """候補を ``mask`` との共通部分に絞る。変化したら True"""
        old = self.domains[var]
        new = old & mask
        if new == old:
            return False
        self.trail.append((var, old))
        self.domains[var] = new
        return True

    def assign(self, var: int, value: int) -> List[int]:
        """値を確定させ、直接変化した変数の一覧を返す"""
        if self.restrict(var, 1 << value):
            return [var]
        return []

    def remove(self, var: int, value: int) -> bool:
        """候補から ``value`` を除く。変化したら True"""
        return self.restrict(var, ~(1 << value))

    def mark(self) -> int:
        """現在の取り消し位置を表すトークンを返す"""
        return len(self.trail)

    def undo(self, token: int) -> None:
        """``token`` 以降の変更を逆順に巻き戻す"""
        trail = self.trail
        domains = self.domains
        while len(trail) > token:
            var, old = trail.pop()
            domains[var] = old

    def unassign(self, token: int) -> None:
        """``token`` を取った後の確定と絞り込みをすべて取り消す"""
        self.undo(token)


__all__ = ["Board", "mask_of", "iter_bits", "min_value", "max_value", "range_mask"]
