"""共通定数やオプション解決用の簡易ヘルパー関数を定義するモジュール"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

# ソルバーの探索ステップ上限。盤面サイズから計算できないときの既定値
DEFAULT_SOLVER_STEP_LIMIT = 500000

# solve の既定タイムアウト秒
DEFAULT_SOLVE_TIMEOUT_S = 1.5

# count_solutions の既定タイムアウト秒
DEFAULT_COUNT_TIMEOUT_S = 1.0

# 生成時の一意性確認に使う短いタイムアウト秒
UNIQUENESS_TIMEOUT_S = 0.8

# 候補盤面を作り直す最大回数
RETRY_LIMIT = 20

# 同じ候補でヒントを増やして一意化を試みる最大回数
ESCALATION_LIMIT = 5

# 盤面サイズの下限と上限 (セル数はおおむね 1600 以下)
MIN_GRID_SIZE = 3
MAX_GRID_SIZE = 40

ALLOWED_DIFFICULTIES = ("easy", "normal", "hard", "expert")


@dataclass(frozen=True)
class OptionSpec:
    """生成オプション1項目の既定値と有効範囲"""

    default: Any
    lo: Optional[float] = None
    hi: Optional[float] = None
    choices: Optional[Sequence[Any]] = None


def _clamp(value: float, lo: Optional[float], hi: Optional[float]) -> float:
    if lo is not None and value < lo:
        return lo
    if hi is not None and value > hi:
        return hi
    return value


def resolve_options(
    specs: Mapping[str, OptionSpec], options: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """既定値を補い、数値オプションを範囲内へ丸めた辞書を返す

    範囲外の数値はエラーにせず端の値へ丸める。選択肢型のオプションに
    候補外の値が来た場合だけ ``ValueError`` を送出する。

    :param specs: オプション名から ``OptionSpec`` への対応表
    :param options: 呼び出し側が指定したオプション。``None`` なら既定値のみ
    """

    given = dict(options or {})
    resolved: Dict[str, Any] = {}
    for name, spec in specs.items():
        value = given.pop(name, None)
        if value is None:
            resolved[name] = spec.default
            continue
        if spec.choices is not None:
            if value not in spec.choices:
                raise ValueError(f"{name} は {list(spec.choices)} のいずれかで指定")
            resolved[name] = value
            continue
        if isinstance(spec.default, bool):
            resolved[name] = bool(value)
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} には数値を指定してください")
        clamped = _clamp(value, spec.lo, spec.hi)
        if clamped != value:
            logger.info("%s=%s を範囲内の %s に丸めました", name, value, clamped)
        if isinstance(spec.default, int):
            clamped = int(round(clamped))
        resolved[name] = clamped
    for name in given:
        logger.warning("未知のオプション %s は無視します", name)
    return resolved


def _evaluate_difficulty(steps: int, depth: int) -> str:
    """ソルバー統計から難易度を推定する関数"""

    # 解析に用いたステップ数とバックトラック深さから判断する
    if steps < 1000 and depth <= 2:
        return "easy"
    if steps < 10000 and depth <= 10:
        return "normal"
    if steps < 100000 and depth <= 30:
        return "hard"
    return "expert"


def worker_timeout_s(rows: int, cols: int) -> float:
    """盤面サイズに応じたワーカー待ち時間を返す"""

    return max(8.0, min(90.0, 6.0 + rows * cols * 0.18))


__all__ = [
    "DEFAULT_SOLVER_STEP_LIMIT",
    "DEFAULT_SOLVE_TIMEOUT_S",
    "DEFAULT_COUNT_TIMEOUT_S",
    "UNIQUENESS_TIMEOUT_S",
    "RETRY_LIMIT",
    "ESCALATION_LIMIT",
    "MIN_GRID_SIZE",
    "MAX_GRID_SIZE",
    "ALLOWED_DIFFICULTIES",
    "OptionSpec",
    "resolve_options",
    "_evaluate_difficulty",
    "worker_timeout_s",
]
