#!/usr/bin/env python3
"""
検査結果電話案内 アプリケーションエントリーポイント

このモジュールはアプリケーションのメインエントリーポイントです。
.env と環境変数から設定を読み込み、検証し、Flask 開発サーバーを起動します。

Usage:
    python main.py

Environment Variables (Required):
    - WEBHOOK_BASE_URL: Webhook のベース URL

Environment Variables (Optional):
    - DATABASE_PATH: SQLite データベースファイル (デフォルト: results_ivr.db)
    - SESSION_BACKEND: memory / redis (デフォルト: memory)
    - REDIS_URL: Redis の URL
    - SESSION_TTL_SECONDS: セッションの失効秒数 (デフォルト: 3600)
    - MAX_PROMPT_ATTEMPTS: 同じプロンプトのやり直し上限 (デフォルト: 3)
    - LOG_LEVEL: ログレベル (デフォルト: INFO)
    - HOST: サーバーホスト (デフォルト: 0.0.0.0)
    - PORT: サーバーポート (デフォルト: 5000)
    - DEBUG: デバッグモード (デフォルト: False)
"""

import os
import sys

from dotenv import load_dotenv

from results_ivr.config import Config, ConfigurationError
from results_ivr.app import create_app


def main() -> int:
    """
    アプリケーションのメインエントリーポイント

    Returns:
        int: 終了コード (0: 正常終了, 1: エラー終了)
    """
    load_dotenv()

    try:
        print("設定を読み込んでいます...")
        config = Config.from_env()
        print("設定の読み込みが完了しました。")

        print("アプリケーションを初期化しています...")
        app = create_app(config)
        print("アプリケーションの初期化が完了しました。")

        host = os.environ.get("HOST", "0.0.0.0")
        port = int(os.environ.get("PORT", "5000"))
        debug = os.environ.get("DEBUG", "").lower() in ("true", "1", "yes")

        print(f"サーバーを起動しています... (host={host}, port={port}, debug={debug})")
        print(f"Answer URL: {config.answer_url}")
        print(f"Event URL: {config.event_url}")
        print("サーバーを停止するには Ctrl+C を押してください。")

        app.run(host=host, port=port, debug=debug)

        return 0

    except ConfigurationError as e:
        print(f"\n[エラー] 設定エラーが発生しました:", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        print("\n必要な環境変数を設定してから再度実行してください。", file=sys.stderr)
        print("\n必須の環境変数:", file=sys.stderr)
        print("  - WEBHOOK_BASE_URL: Webhook のベース URL", file=sys.stderr)
        print("  - REDIS_URL: SESSION_BACKEND=redis の場合", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nサーバーを停止しました。")
        return 0


if __name__ == "__main__":
    sys.exit(main())
