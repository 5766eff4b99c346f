"""
Flask アプリケーションモジュール (Flask Application Module)

検査結果電話案内の Flask アプリケーションを提供します。
Vonage の Webhook を通話フローのターンに変換し、応答を NCCO で返します。
構造化ロギングとエラーハンドラーもここで設定します。
"""

import logging
import sys
from typing import Any, Dict, Optional, Tuple

import structlog
from flask import Flask, jsonify, request, Response
from werkzeug.exceptions import HTTPException

from .call_flow import CallFlow
from .composer import ResultMessageComposer
from .config import Config
from .ncco_builder import NCCOBuilder
from .recorder import DeliveryRecorder
from .scripts import ScriptStore
from .session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from .storage import Repository, SQLiteRepository


# 通話終了を表す Vonage のステータス
TERMINAL_CALL_STATUSES = ["completed", "failed", "rejected", "busy", "cancelled", "timeout", "unanswered"]

HTTP_ERROR_TYPES = {400: "bad_request", 404: "not_found", 405: "method_not_allowed"}


class WebhookValidationError(Exception):
    """
    Webhook 検証エラー

    不正な Webhook リクエストを検出した場合に発生します。

    Attributes:
        message: エラーメッセージ
        error_type: エラーの種類
    """

    def __init__(self, message: str, error_type: str = "validation_error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


def configure_structlog(log_level: str = "INFO") -> None:
    """
    structlog を JSON 出力で設定する

    各行は timestamp, level, event と、bound_contextvars で束ねた
    call_id を含みます。
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def validate_json_request(data: Any, required_fields: Optional[list] = None) -> Tuple[bool, Optional[str]]:
    """
    Webhook の JSON 本文を検証する

    Returns:
        (検証結果, エラーメッセージ)
    """
    if not isinstance(data, dict):
        return False, "Invalid JSON: webhook body must be a JSON object"

    missing = [name for name in (required_fields or []) if data.get(name) in (None, "")]
    if missing:
        return False, f"Missing required fields: {', '.join(missing)}"
    return True, None


def create_error_response(error_type: str, message: str, status_code: int) -> Tuple[Response, int]:
    """{"error", "message", "status_code"} 形式の JSON エラー応答"""
    body = {"error": error_type, "message": message, "status_code": status_code}
    return jsonify(body), status_code


def extract_digits(data: Dict[str, Any]) -> str:
    """
    Input Webhook のデータからキー入力を取り出す

    Vonage は {"dtmf": {"digits": "123", "timed_out": false}} の形式で送信します。
    タイムアウトや入力なしの場合は空文字列を返します。
    """
    dtmf = data.get("dtmf") or {}
    if not isinstance(dtmf, dict):
        raise WebhookValidationError(
            message="Invalid dtmf: must be a JSON object",
            error_type="invalid_dtmf"
        )
    digits = dtmf.get("digits") or ""
    if not isinstance(digits, str):
        digits = str(digits)
    return digits


class WebhookHandler:
    """
    Vonage Webhook を処理するハンドラー

    着信 (Answer)、キー入力 (Input)、通話イベント (Event) の Webhook を
    通話フローのターンに変換します。

    Attributes:
        call_flow: 通話セッションの状態機械
        ncco_builder: NCCO を構築するビルダー
        logger: 構造化ロガー
    """

    def __init__(self, call_flow: CallFlow, ncco_builder: NCCOBuilder):
        self.call_flow = call_flow
        self.ncco_builder = ncco_builder
        self.logger = get_logger(__name__)

    def handle_answer(self, params: Dict[str, Any]) -> list:
        """
        着信電話の Answer Webhook を処理

        通話の最初のターンとして、言語選択のプロンプトを返します。

        Args:
            params: Vonage から送信されるパラメータ
                - uuid: 通話 UUID
                - from: 発信者番号
                - to: 着信番号

        Returns:
            NCCO アクションのリスト
        """
        call_uuid = params.get("uuid", "")
        if not call_uuid:
            raise WebhookValidationError(
                message="Missing required fields: uuid",
                error_type="missing_call_uuid"
            )

        # 発信者番号は記録しない
        self.logger.info("incoming_call_received", call_uuid=call_uuid)

        response = self.call_flow.handle_turn(call_uuid)
        return self.ncco_builder.build_turn_ncco(response)

    def handle_input(self, prompt: str, data: Dict[str, Any]) -> list:
        """
        キー入力の Input Webhook を処理

        Args:
            prompt: 発信者が応答したプロンプトの識別子 (URL の一部)
            data: Vonage から送信される入力データ
                - uuid: 通話 UUID
                - dtmf: {"digits": ..., "timed_out": ...}

        Returns:
            NCCO アクションのリスト
        """
        is_valid, error_message = validate_json_request(data, required_fields=["uuid"])
        if not is_valid:
            raise WebhookValidationError(message=error_message, error_type="invalid_input_event")

        call_uuid = str(data["uuid"])
        digits = extract_digits(data)

        self.logger.debug(
            "input_webhook_received",
            call_uuid=call_uuid,
            prompt=prompt,
            digit_count=len(digits)
        )

        response = self.call_flow.handle_turn(call_uuid, digits=digits, prompt=prompt)
        ncco = self.ncco_builder.build_turn_ncco(response)

        self.logger.info(
            "turn_response",
            call_uuid=call_uuid,
            prompt=response.prompt,
            ncco_actions=len(ncco)
        )
        return ncco

    def handle_event(self, data: Dict[str, Any]) -> None:
        """
        通話イベント Webhook を処理

        通話が終了した場合、通話セッションを破棄します。

        Args:
            data: イベントデータ
                - uuid: 通話 UUID
                - status: 通話ステータス
        """
        call_uuid = data.get("uuid", "")
        status = data.get("status", "")

        self.logger.info(
            "event_webhook_received",
            call_uuid=call_uuid,
            status=status
        )

        if call_uuid and status in TERMINAL_CALL_STATUSES:
            self.call_flow.end_call(call_uuid)


def create_session_store(config: Config) -> SessionStore:
    """設定に応じたセッションストアを作成"""
    if config.session_backend == "redis":
        return RedisSessionStore.from_url(config.redis_url, ttl_seconds=config.session_ttl_seconds)
    return InMemorySessionStore(ttl_seconds=config.session_ttl_seconds)


def create_app(
    config: Optional[Config] = None,
    repository: Optional[Repository] = None,
    session_store: Optional[SessionStore] = None
) -> Flask:
    """
    Flask アプリケーションを作成

    Args:
        config: アプリケーション設定（None の場合は環境変数から読み込み）
        repository: リポジトリ（None の場合は config.database_path の SQLite）
        session_store: セッションストア（None の場合は config に従って作成）

    Returns:
        設定済みの Flask アプリケーション
    """
    app = Flask(__name__)

    if config is None:
        config = Config.from_env()

    app.config["RESULTS_IVR_CONFIG"] = config

    configure_structlog(config.log_level)

    logger = get_logger(__name__)
    logger.info(
        "application_initialized",
        log_level=config.log_level,
        webhook_base_url=config.webhook_base_url,
        session_backend=config.session_backend
    )

    if repository is None:
        repository = SQLiteRepository(config.database_path)
    app.config["REPOSITORY"] = repository

    if session_store is None:
        session_store = create_session_store(config)
    app.config["SESSION_STORE"] = session_store

    scripts = ScriptStore(repository)
    call_flow = CallFlow(
        repository=repository,
        session_store=session_store,
        scripts=scripts,
        composer=ResultMessageComposer(repository, scripts),
        recorder=DeliveryRecorder(repository),
        delivery_method=config.delivery_method
    )
    app.config["CALL_FLOW"] = call_flow

    ncco_builder = NCCOBuilder(config)
    app.config["NCCO_BUILDER"] = ncco_builder

    webhook_handler = WebhookHandler(call_flow=call_flow, ncco_builder=ncco_builder)
    app.config["WEBHOOK_HANDLER"] = webhook_handler

    # ==========================================================================
    # エラーハンドラー (Error Handlers)
    # ==========================================================================

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        error_type = HTTP_ERROR_TYPES.get(error.code, "http_error")
        logger.warning(
            "http_error",
            error_type=error_type,
            status_code=error.code,
            path=request.path,
            method=request.method
        )
        return create_error_response(error_type, error.description or error.name, error.code)

    @app.errorhandler(WebhookValidationError)
    def handle_webhook_validation_error(error: WebhookValidationError):
        logger.error(
            "webhook_rejected",
            error_type=error.error_type,
            error_message=error.message,
            path=request.path,
            content_type=request.content_type
        )
        return create_error_response(error.error_type, error.message, 400)

    @app.errorhandler(Exception)
    def handle_generic_exception(error: Exception):
        # 通話フロー内の障害はエラー応答になるため、ここに届くのはそれ以外の不具合
        logger.error(
            "unhandled_exception",
            error_type=type(error).__name__,
            error_message=str(error),
            path=request.path,
            exc_info=True
        )
        return create_error_response("internal_error", "An unexpected error occurred", 500)

    # ==========================================================================
    # エンドポイント (Endpoints)
    # ==========================================================================

    def read_json_body() -> Dict[str, Any]:
        try:
            data = request.get_json(force=True, silent=False)
        except Exception as json_error:
            logger.error(
                "invalid_json_error",
                error_type="invalid_json",
                error_message=str(json_error),
                path=request.path,
                content_type=request.content_type
            )
            raise WebhookValidationError(
                message="Invalid JSON: request body is malformed",
                error_type="invalid_json"
            )

        if data is None:
            data = {}

        is_valid, error_message = validate_json_request(data)
        if not is_valid:
            raise WebhookValidationError(message=error_message, error_type="invalid_json")
        return data

    @app.route("/health", methods=["GET"])
    def health_check():
        logger.debug("health_check_requested")
        return jsonify({"status": "healthy"}), 200

    @app.route("/webhooks/answer", methods=["GET"])
    def answer_webhook():
        """
        Answer Webhook エンドポイント

        Query Parameters:
            - uuid: 通話 UUID
            - from: 発信者番号
            - to: 着信番号

        Returns:
            JSON レスポンス: NCCO アクションのリスト
        """
        params = {
            "uuid": request.args.get("uuid", ""),
            "from": request.args.get("from", ""),
            "to": request.args.get("to", "")
        }
        ncco = webhook_handler.handle_answer(params)
        return jsonify(ncco), 200

    @app.route("/webhooks/input/<prompt>", methods=["POST"])
    def input_webhook(prompt: str):
        """
        Input Webhook エンドポイント

        Request Body (JSON):
            - uuid: 通話 UUID
            - dtmf: {"digits": "1234", "timed_out": false}

        Returns:
            JSON レスポンス: NCCO アクションのリスト
        """
        data = read_json_body()
        ncco = webhook_handler.handle_input(prompt, data)
        return jsonify(ncco), 200

    @app.route("/webhooks/event", methods=["POST"])
    def event_webhook():
        """
        Event Webhook エンドポイント

        Request Body (JSON):
            - uuid: 通話 UUID
            - status: 通話ステータス

        Returns:
            JSON レスポンス: {"status": "ok"}
        """
        data = read_json_body()
        webhook_handler.handle_event(data)
        return jsonify({"status": "ok"}), 200

    logger.info("application_ready", endpoints=["/health", "/webhooks/answer", "/webhooks/input/<prompt>", "/webhooks/event"])

    return app
