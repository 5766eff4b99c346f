#!/usr/bin/env python3
"""
スクリプト (言語別メッセージテンプレート) をデータベースに登録するスクリプト

Usage:
    python seed_scripts.py [JSONファイル]

JSON ファイルを省略すると results_ivr/default_scripts.json を使用します。
データベースは DATABASE_PATH (デフォルト: results_ivr.db) です。
"""

import os
import sys

from dotenv import load_dotenv

from results_ivr.scripts import DEFAULT_SCRIPTS_PATH, load_scripts
from results_ivr.storage import SQLiteRepository, StorageError


def main() -> int:
    load_dotenv()

    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_SCRIPTS_PATH
    database_path = os.environ.get("DATABASE_PATH", "results_ivr.db")

    try:
        repository = SQLiteRepository(database_path)
        count = load_scripts(repository, path)
    except (OSError, ValueError, StorageError) as e:
        print(f"[エラー] スクリプトを登録できませんでした: {e}", file=sys.stderr)
        return 1

    print(f"{count} 件のスクリプトを登録しました ({database_path})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
