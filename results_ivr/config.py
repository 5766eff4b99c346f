"""
設定管理モジュール (Configuration Management Module)

環境変数からアプリケーション設定を読み込み、検証を行います。
"""

from dataclasses import dataclass, field
from typing import Optional
import os


class ConfigurationError(Exception):
    """設定エラー例外クラス"""
    pass


@dataclass
class Config:
    """
    アプリケーション設定

    環境変数から設定を読み込み、必須設定のバリデーションを行います。
    """
    # Webhook URL設定
    webhook_base_url: str
    answer_url: str
    event_url: str

    # データベース設定
    database_path: str

    # 通話セッション設定
    session_backend: str
    redis_url: Optional[str]
    session_ttl_seconds: int

    # 音声・入力設定
    max_prompt_attempts: int
    input_timeout: int
    speech_style: int
    delivery_method: str

    # ロギング設定
    log_level: str

    # デフォルト値の定数
    DEFAULT_DATABASE_PATH: str = field(default="results_ivr.db", init=False, repr=False)
    DEFAULT_SESSION_BACKEND: str = field(default="memory", init=False, repr=False)
    DEFAULT_SESSION_TTL_SECONDS: int = field(default=3600, init=False, repr=False)
    DEFAULT_MAX_PROMPT_ATTEMPTS: int = field(default=3, init=False, repr=False)
    DEFAULT_INPUT_TIMEOUT: int = field(default=10, init=False, repr=False)
    DEFAULT_DELIVERY_METHOD: str = field(default="phone", init=False, repr=False)
    DEFAULT_LOG_LEVEL: str = field(default="INFO", init=False, repr=False)

    @classmethod
    def from_env(cls) -> 'Config':
        """
        環境変数から設定を読み込む

        必須の環境変数:
            - WEBHOOK_BASE_URL: Webhook のベース URL

        オプションの環境変数:
            - DATABASE_PATH: SQLite データベースファイル (デフォルト: results_ivr.db)
            - SESSION_BACKEND: セッションストア memory / redis (デフォルト: memory)
            - REDIS_URL: Redis の URL (SESSION_BACKEND=redis の場合は必須)
            - SESSION_TTL_SECONDS: セッションの失効秒数 (デフォルト: 3600)
            - MAX_PROMPT_ATTEMPTS: 同じプロンプトのやり直し上限 (デフォルト: 3)
            - INPUT_TIMEOUT: キー入力の待ち時間（秒） (デフォルト: 10)
            - SPEECH_STYLE: 音声スタイル (デフォルト: 0)
            - DELIVERY_METHOD: 配信チャネル識別子 (デフォルト: phone)
            - LOG_LEVEL: ログレベル (デフォルト: INFO)

        Returns:
            Config: 設定オブジェクト

        Raises:
            ConfigurationError: 必須設定が欠落している、または数値が不正な場合
        """
        webhook_base_url = os.environ.get("WEBHOOK_BASE_URL", "")

        answer_url = os.environ.get("ANSWER_URL", "")
        event_url = os.environ.get("EVENT_URL", "")
        if webhook_base_url:
            base = webhook_base_url.rstrip("/")
            if not answer_url:
                answer_url = f"{base}/webhooks/answer"
            if not event_url:
                event_url = f"{base}/webhooks/event"

        try:
            session_ttl_seconds = int(os.environ.get("SESSION_TTL_SECONDS", str(cls.DEFAULT_SESSION_TTL_SECONDS)))
            max_prompt_attempts = int(os.environ.get("MAX_PROMPT_ATTEMPTS", str(cls.DEFAULT_MAX_PROMPT_ATTEMPTS)))
            input_timeout = int(os.environ.get("INPUT_TIMEOUT", str(cls.DEFAULT_INPUT_TIMEOUT)))
            speech_style = int(os.environ.get("SPEECH_STYLE", "0"))
        except ValueError as e:
            raise ConfigurationError(f"数値の設定が不正です: {e}") from e

        config = cls(
            webhook_base_url=webhook_base_url,
            answer_url=answer_url,
            event_url=event_url,
            database_path=os.environ.get("DATABASE_PATH", cls.DEFAULT_DATABASE_PATH),
            session_backend=os.environ.get("SESSION_BACKEND", cls.DEFAULT_SESSION_BACKEND).lower(),
            redis_url=os.environ.get("REDIS_URL") or None,
            session_ttl_seconds=session_ttl_seconds,
            max_prompt_attempts=max_prompt_attempts,
            input_timeout=input_timeout,
            speech_style=speech_style,
            delivery_method=os.environ.get("DELIVERY_METHOD", cls.DEFAULT_DELIVERY_METHOD),
            log_level=os.environ.get("LOG_LEVEL", cls.DEFAULT_LOG_LEVEL),
        )

        # バリデーション実行
        config.validate()

        return config

    def validate(self) -> None:
        """
        設定の妥当性を検証

        Raises:
            ConfigurationError: 必須設定が欠落または無効な場合
        """
        missing_fields = []

        if not self.webhook_base_url:
            missing_fields.append("WEBHOOK_BASE_URL")
        if self.session_backend == "redis" and not self.redis_url:
            missing_fields.append("REDIS_URL")

        if missing_fields:
            error_message = (
                f"必須の設定が欠落しています。以下の環境変数を設定してください: "
                f"{', '.join(missing_fields)}"
            )
            raise ConfigurationError(error_message)

        valid_backends = ["memory", "redis"]
        if self.session_backend not in valid_backends:
            raise ConfigurationError(
                f"SESSION_BACKEND は {valid_backends} のいずれかである必要があります: {self.session_backend}"
            )

        if self.session_ttl_seconds <= 0:
            raise ConfigurationError(
                f"SESSION_TTL_SECONDS は正の整数である必要があります: {self.session_ttl_seconds}"
            )

        if self.max_prompt_attempts <= 0:
            raise ConfigurationError(
                f"MAX_PROMPT_ATTEMPTS は正の整数である必要があります: {self.max_prompt_attempts}"
            )

        if self.input_timeout <= 0:
            raise ConfigurationError(
                f"INPUT_TIMEOUT は正の整数である必要があります: {self.input_timeout}"
            )

        if self.speech_style < 0:
            raise ConfigurationError(
                f"SPEECH_STYLE は0以上の整数である必要があります: {self.speech_style}"
            )

        if not self.delivery_method:
            raise ConfigurationError("DELIVERY_METHOD は空にできません")

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ConfigurationError(
                f"LOG_LEVEL は {valid_log_levels} のいずれかである必要があります: {self.log_level}"
            )
