"""難易度ごとのパズルをまとめて生成するスクリプト"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .generator import generate_multiple_puzzles, parse_option, setup_logging
from .puzzle_io import save_puzzles
from .puzzles import puzzle_types


# コマンドラインから実行される関数
def main(argv: Optional[List[str]] = None) -> None:
    """引数を解釈してパズルを生成し保存する"""

    parser = argparse.ArgumentParser(
        description="難易度ごとに同数のパズルを生成して保存します"
    )
    parser.add_argument("puzzle_type", choices=puzzle_types(), help="パズルの種類")
    parser.add_argument("rows", type=int, help="盤面の行数")
    parser.add_argument("cols", type=int, help="盤面の列数")
    parser.add_argument(
        "count_each",
        type=int,
        nargs="?",
        default=1,
        help="各難易度の生成数 (デフォルト:1)",
    )
    parser.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="並列生成プロセス数",
    )
    parser.add_argument("--seed", type=int, default=None, help="乱数シード")
    parser.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="生成オプション。複数指定可",
    )
    parser.add_argument("--output", default="data", help="保存先ディレクトリ")
    args = parser.parse_args(argv)

    setup_logging(logging.WARNING if args.jobs > 1 else logging.INFO)
    puzzles = generate_multiple_puzzles(
        args.puzzle_type,
        args.rows,
        args.cols,
        args.count_each,
        options=dict(parse_option(o) for o in args.option),
        seed=args.seed,
        jobs=args.jobs,
        worker_log_level=logging.WARNING,
    )
    path = save_puzzles(puzzles, args.output)
    print(f"{path} を作成しました")
    for pzl in puzzles:
        print(f"--- {pzl['id']} uniqueness={pzl['uniqueness']} ---")


if __name__ == "__main__":
    main()
