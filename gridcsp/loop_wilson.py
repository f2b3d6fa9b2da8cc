"""Wilson 法によるループ生成ロジック

頂点格子上に一様全域木を作り、木に含まれない辺を1本足してできる
基本閉路のうち最も長いものをスリザーリンクの解ループとして使う。
"""

from __future__ import annotations

import logging
import random
from typing import Dict, List, Tuple

import numpy as np
from numba import njit

logger = logging.getLogger(__name__)

Edges = Dict[str, List[List[bool]]]


def create_empty_edges(rows: int, cols: int) -> Edges:
    """solution 用の空の二次元配列を作成する"""
    horizontal = [[False for _ in range(cols)] for _ in range(rows + 1)]
    vertical = [[False for _ in range(cols + 1)] for _ in range(rows)]
    return {"horizontal": horizontal, "vertical": vertical}


def rectangle_edges(rows: int, cols: int) -> Edges:
    """外周だけのループ"""
    edges = create_empty_edges(rows, cols)
    for c in range(cols):
        edges["horizontal"][0][c] = True
        edges["horizontal"][rows][c] = True
    for r in range(rows):
        edges["vertical"][r][0] = True
        edges["vertical"][r][cols] = True
    return edges


def _pack_edges(edges: Edges) -> Tuple[np.ndarray, np.ndarray]:
    """辺情報を NumPy 配列へ変換する簡易ヘルパー"""
    h = np.array(edges["horizontal"], dtype=np.uint8)
    v = np.array(edges["vertical"], dtype=np.uint8)
    return h, v


@njit(cache=True)
def _count_edges_bitboard(h: np.ndarray, v: np.ndarray) -> int:
    """NumPy 配列化された辺の数を数える"""
    return int(h.sum() + v.sum())


@njit(cache=True)
def _curve_ratio_bitboard(h: np.ndarray, v: np.ndarray, rows: int, cols: int) -> float:
    """曲がり角の頂点数を辺の総数で割った値"""

    deg_h = np.zeros((rows + 1, cols + 1), dtype=np.uint8)
    deg_v = np.zeros((rows + 1, cols + 1), dtype=np.uint8)

    deg_h[:, :-1] += h
    deg_h[:, 1:] += h
    deg_v[:-1, :] += v
    deg_v[1:, :] += v

    total_deg = deg_h + deg_v
    curves = (total_deg == 2) & (deg_h == 1) & (deg_v == 1)
    curve_count = int(np.sum(curves))

    total = int(h.sum() + v.sum())
    return curve_count / total if total > 0 else 0.0


def count_edges(edges: Edges) -> int:
    h, v = _pack_edges(edges)
    return int(_count_edges_bitboard(h, v))


def curve_ratio(edges: Edges) -> float:
    h, v = _pack_edges(edges)
    rows, cols = v.shape[0], h.shape[1]
    return float(_curve_ratio_bitboard(h, v, rows, cols))


def _spanning_tree(rows: int, cols: int, rng: random.Random) -> List[int]:
    """ループ消去ランダムウォークで一様全域木を作り、親頂点の配列を返す"""

    width = cols + 1
    total = (rows + 1) * width

    def neighbors(u: int) -> List[int]:
        r, c = divmod(u, width)
        result = []
        if r > 0:
            result.append(u - width)
        if r < rows:
            result.append(u + width)
        if c > 0:
            result.append(u - 1)
        if c < cols:
            result.append(u + 1)
        return result

    in_tree = [False] * total
    parent = [-1] * total
    in_tree[rng.randrange(total)] = True
    order = list(range(total))
    rng.shuffle(order)
    for start in order:
        nxt: Dict[int, int] = {}
        u = start
        while not in_tree[u]:
            # 同じ頂点に戻ったら上書きされるので自然にループが消える
            nxt[u] = rng.choice(neighbors(u))
            u = nxt[u]
        u = start
        while not in_tree[u]:
            in_tree[u] = True
            parent[u] = nxt[u]
            u = nxt[u]
    return parent


def _depths(parent: List[int]) -> List[int]:
    depth = [-1] * len(parent)
    for start in range(len(parent)):
        path = []
        u = start
        while u != -1 and depth[u] < 0:
            path.append(u)
            u = parent[u]
        base = depth[u] if u != -1 else -1
        for w in reversed(path):
            base += 1
            depth[w] = base
    return depth


def _cycle(parent: List[int], depth: List[int], a: int, b: int) -> List[Tuple[int, int]]:
    """木の辺 a-b 間の経路に辺 (a, b) を足した閉路"""
    left: List[Tuple[int, int]] = []
    right: List[Tuple[int, int]] = []
    while a != b:
        if depth[a] >= depth[b]:
            left.append((a, parent[a]))
            a = parent[a]
        else:
            right.append((b, parent[b]))
            b = parent[b]
    return left + right


def _mark(edges: Edges, width: int, u: int, w: int) -> None:
    ur, uc = divmod(u, width)
    wr, wc = divmod(w, width)
    if ur == wr:
        edges["horizontal"][ur][min(uc, wc)] = True
    else:
        edges["vertical"][min(ur, wr)][uc] = True


def _longest_cycle(rows: int, cols: int, rng: random.Random) -> Edges:
    parent = _spanning_tree(rows, cols, rng)
    depth = _depths(parent)
    width = cols + 1
    best: List[Tuple[int, int]] = []
    best_extra = (-1, -1)
    for r in range(rows + 1):
        for c in range(cols + 1):
            u = r * width + c
            for w in (u + 1 if c < cols else -1, u + width if r < rows else -1):
                if w < 0 or parent[u] == w or parent[w] == u:
                    continue
                path = _cycle(parent, depth, u, w)
                if len(path) > len(best):
                    best = path
                    best_extra = (u, w)
    edges = create_empty_edges(rows, cols)
    if best_extra[0] < 0:
        return edges
    for u, w in best:
        _mark(edges, width, u, w)
    _mark(edges, width, *best_extra)
    return edges


def min_loop_length(rows: int, cols: int) -> int:
    return max(10, int(0.6 * (rows + cols)))


def generate_loop(
    rows: int, cols: int, rng: random.Random, *, attempts: int = 20
) -> Tuple[Edges, int, float]:
    """長さが十分なループを作り、(辺, ループ長, 曲がり角比率) を返す"""

    target = min_loop_length(rows, cols)
    for _ in range(attempts):
        edges = _longest_cycle(rows, cols, rng)
        length = count_edges(edges)
        if length >= target:
            return edges, length, curve_ratio(edges)
    # 失敗時は外周だけのループを返す
    logger.warning("十分な長さのループが得られなかったため外周ループを使います")
    edges = rectangle_edges(rows, cols)
    return edges, count_edges(edges), curve_ratio(edges)


def _warmup_numba() -> None:
    """Numba コンパイルを事前に行うウォームアップ関数"""

    dummy: np.ndarray = np.zeros((1, 1), dtype=np.uint8)
    _count_edges_bitboard(dummy, dummy)
    _curve_ratio_bitboard(dummy, np.zeros((0, 2), dtype=np.uint8), 0, 1)


_warmup_numba()


__all__ = [
    "Edges",
    "create_empty_edges",
    "rectangle_edges",
    "count_edges",
    "curve_ratio",
    "min_loop_length",
    "generate_loop",
]
