#!/usr/bin/env python3
"""
配信レポートを CSV で出力するスクリプト

受診日が期間内の受診について、(受診, 結果, 配信) ごとに1行を出力します。

Usage:
    python export_report.py 2024-01-01 2024-01-31 [-o report.csv]
"""

import argparse
import os
import sys
from datetime import date

from dotenv import load_dotenv

from results_ivr.reporting import generate_report_csv
from results_ivr.storage import SQLiteRepository, StorageError


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(description="配信レポートを CSV で出力")
    parser.add_argument("start_date", type=date.fromisoformat, help="開始日 (YYYY-MM-DD)")
    parser.add_argument("end_date", type=date.fromisoformat, help="終了日 (YYYY-MM-DD)")
    parser.add_argument("-o", "--output", help="出力ファイル (省略時は標準出力)")
    args = parser.parse_args()

    try:
        repository = SQLiteRepository(os.environ.get("DATABASE_PATH", "results_ivr.db"))
        csv_data = generate_report_csv(repository, args.start_date, args.end_date)
    except StorageError as e:
        print(f"[エラー] レポートを作成できませんでした: {e}", file=sys.stderr)
        return 1

    if args.output:
        with open(args.output, "w", encoding="utf-8", newline="") as f:
            f.write(csv_data)
        print(f"保存: {args.output}")
    else:
        sys.stdout.write(csv_data)
    return 0


if __name__ == "__main__":
    sys.exit(main())
