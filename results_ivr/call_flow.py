"""
通話フローモジュール (Call Flow Module)

電話の1ターン (Webhook 1回) ごとに通話セッションを読み込み、入力を検証して
状態を進め、次に読み上げる内容を返す状態機械を提供します。

状態遷移:
    WELCOME -> LANGUAGE_SELECT -> USERNAME_PROMPT -> PASSWORD_PROMPT
        -> DELIVER_RESULTS -> REPEAT_MESSAGE
    どの状態からも、処理できない障害で ERROR に遷移します。

やり直し回数は数えて返すだけで、通話を切断するのはトランスポート側です。
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from .composer import ResultMessageComposer
from .formatter import DEFAULT_LOCALE, LANGUAGE_DIGITS, locale_code, space_digits
from .recorder import DeliveryRecorder
from .scripts import ScriptNotFoundError, ScriptStore
from .session_store import CallSession, CallState, SessionStore, StaleSessionError
from .storage import Repository, StorageError


logger = structlog.get_logger(__name__)

GENERIC_APOLOGY = "Sorry, an unknown error occurred, please contact the clinic."

# 状態 -> その状態で待っているプロンプトの識別子
PROMPTS = {
    CallState.LANGUAGE_SELECT: "welcome",
    CallState.USERNAME_PROMPT: "username",
    CallState.PASSWORD_PROMPT: "password",
    CallState.DELIVER_RESULTS: "repeat",
    CallState.REPEAT_MESSAGE: "repeat",
    CallState.ERROR: "error",
}


@dataclass
class TurnResponse:
    """
    1ターンの応答

    Attributes:
        prompt: 次のターンが応答するプロンプトの識別子
            (welcome, username, password, repeat, error)
        message: 読み上げるメッセージ
        locale: 音声合成のロケール (en-US, es-MX)
        error_message: メッセージの前に読み上げるエラー (入力やり直し時)
        retry_count: このプロンプトのやり直し回数
        expects_input: キー入力を待つかどうか (error では False)
    """
    prompt: str
    message: str
    locale: str
    error_message: Optional[str] = None
    retry_count: int = 0
    expects_input: bool = True


class CallFlow:
    """
    通話セッションの状態機械

    Attributes:
        repository: リポジトリ
        session_store: セッションストア
        scripts: スクリプトストア
        composer: 結果メッセージ合成サービス
        recorder: 配信記録サービス
        delivery_method: 配信チャネル識別子
    """

    def __init__(
        self,
        repository: Repository,
        session_store: SessionStore,
        scripts: ScriptStore,
        composer: ResultMessageComposer,
        recorder: DeliveryRecorder,
        delivery_method: str = "phone"
    ):
        self.repository = repository
        self.session_store = session_store
        self.scripts = scripts
        self.composer = composer
        self.recorder = recorder
        self.delivery_method = delivery_method

    def handle_turn(self, call_id: str, digits: Optional[str] = None, prompt: Optional[str] = None) -> TurnResponse:
        """
        1ターンを処理する

        Args:
            call_id: 通話ID
            digits: キーパッド入力 (タイムアウト時は空)
            prompt: 発信者が応答しているプロンプトの識別子 (Answer Webhook では None)

        Returns:
            TurnResponse。処理中の障害はすべて ERROR 状態の応答になり、
            例外は送出しません。
        """
        session = None
        with structlog.contextvars.bound_contextvars(call_id=call_id):
            try:
                session = self.session_store.load(call_id) or CallSession(call_id=call_id)
                return self._advance(session, (digits or "").strip(), prompt)
            except StaleSessionError as e:
                logger.warning(
                    "session_changed_concurrently",
                    expected_version=e.expected_version,
                    actual_version=e.actual_version
                )
                try:
                    session = self.session_store.load(call_id)
                    if session is not None:
                        return self._render_current(session)
                    return self._fail(None, e)
                except Exception as reload_error:
                    return self._fail(session, reload_error)
            except Exception as e:
                return self._fail(session, e)

    def end_call(self, call_id: str) -> bool:
        """通話終了時にセッションを破棄する"""
        deleted = self.session_store.delete(call_id)
        logger.info("call_session_ended", call_id=call_id, deleted=deleted)
        return deleted

    # ----------------------------------------------------------------------
    # 遷移
    # ----------------------------------------------------------------------

    def _advance(self, session: CallSession, digits: str, prompt: Optional[str]) -> TurnResponse:
        expected_version = session.version
        state = session.state

        if state == CallState.WELCOME:
            session.state = CallState.LANGUAGE_SELECT
            response = self._render_current(session)
        elif prompt != PROMPTS.get(state):
            # 既に先へ進んだプロンプトへの再送や Answer の再送は副作用なしで現在の状態を返す
            logger.warning("turn_prompt_mismatch", state=state.value, prompt=prompt)
            return self._render_current(session)
        elif state == CallState.LANGUAGE_SELECT:
            response = self._select_language(session, digits)
        elif state == CallState.USERNAME_PROMPT:
            response = self._process_username(session, digits)
        elif state == CallState.PASSWORD_PROMPT:
            response = self._process_password(session, digits)
            if session.state == CallState.DELIVER_RESULTS:
                # 配信の前に状態を確保し、重複ターンが二重に配信しないようにする
                self.session_store.save(session, expected_version)
                expected_version = session.version
                response = self._deliver_results(session)
        elif state == CallState.REPEAT_MESSAGE:
            session.message_count += 1
            response = self._render_current(session)
        elif state == CallState.DELIVER_RESULTS:
            # repeat の入力 URL は配信の応答でしか渡さないため、ここに残った
            # セッションは配信後の保存に失敗している
            logger.error("delivery_left_unfinished", visit_id=session.visit_id)
            return self._enter_error(session)
        else:
            return self._render_current(session)

        self.session_store.save(session, expected_version)
        logger.info(
            "turn_processed",
            from_state=state.value,
            to_state=session.state.value,
            prompt=response.prompt,
            retry_count=response.retry_count
        )
        return response

    def _select_language(self, session: CallSession, digits: str) -> TurnResponse:
        language = LANGUAGE_DIGITS.get(digits)
        if language is None:
            session.welcome_count += 1
            return self._render_current(
                session, error_message=self.scripts.get("language_not_selected", session.language)
            )

        session.language = language
        session.state = CallState.USERNAME_PROMPT
        return self._render_current(session)

    def _process_username(self, session: CallSession, digits: str) -> TurnResponse:
        if not digits:
            session.username_count += 1
            return self._render_current(
                session, error_message=self.scripts.get("username_prompt_repeat", session.language)
            )

        if self.repository.find_visit_by_username(digits) is None:
            session.username_count += 1
            error_message = self.scripts.render(
                "username_prompt_invalid", session.language, {"username": space_digits(digits)}
            )
            return self._render_current(session, error_message=error_message)

        session.username = digits
        session.state = CallState.PASSWORD_PROMPT
        return self._render_current(session)

    def _process_password(self, session: CallSession, digits: str) -> TurnResponse:
        if not digits:
            session.password_count += 1
            return self._render_current(
                session, error_message=self.scripts.get("password_prompt_repeat", session.language)
            )

        visit = self.repository.find_visit_by_credentials(session.username, digits)
        if visit is None:
            session.password_count += 1
            error_message = self.scripts.render("password_prompt_invalid", session.language, {
                "username": space_digits(session.username),
                "password": space_digits(digits),
            })
            return self._render_current(session, error_message=error_message)

        session.visit_id = visit.id
        session.state = CallState.DELIVER_RESULTS
        return TurnResponse(prompt="repeat", message="", locale=locale_code(session.language))

    def _deliver_results(self, session: CallSession) -> TurnResponse:
        visit = self.repository.get_visit(session.visit_id)
        composition = self.composer.compose(visit, session.language, self.delivery_method)
        delivery = self.recorder.record(composition, self.delivery_method)

        session.message = composition.message
        session.state = CallState.REPEAT_MESSAGE
        logger.info(
            "results_delivered",
            visit_id=visit.id,
            delivery_id=delivery.id,
            branch=composition.branch.value
        )
        return self._render_current(session)

    # ----------------------------------------------------------------------
    # 応答
    # ----------------------------------------------------------------------

    def _render_current(self, session: CallSession, error_message: Optional[str] = None) -> TurnResponse:
        """セッションの現在の状態のプロンプトを描画する (副作用なし)"""
        state = session.state
        locale = locale_code(session.language)

        if state == CallState.LANGUAGE_SELECT:
            message, retry_count = self.scripts.get("welcome", session.language), session.welcome_count
        elif state == CallState.USERNAME_PROMPT:
            message, retry_count = self.scripts.get("username_prompt", session.language), session.username_count
        elif state == CallState.PASSWORD_PROMPT:
            message, retry_count = self.scripts.get("password_prompt", session.language), session.password_count
        elif state in (CallState.DELIVER_RESULTS, CallState.REPEAT_MESSAGE):
            message, retry_count = session.message or "", session.message_count
        else:
            return self._error_response(session.language)

        return TurnResponse(
            prompt=PROMPTS[state],
            message=message,
            locale=locale,
            error_message=error_message,
            retry_count=retry_count
        )

    def _fail(self, session: Optional[CallSession], error: Exception) -> TurnResponse:
        logger.error(
            "turn_failed",
            error_type=type(error).__name__,
            error_message=str(error),
            state=session.state.value if session else None,
            exc_info=error
        )

        if session is None:
            return self._error_response(None)
        return self._enter_error(session)

    def _enter_error(self, session: CallSession) -> TurnResponse:
        """ERROR に遷移して保存し、エラー応答を返す (保存の失敗は記録のみ)"""
        if session.state != CallState.ERROR:
            session.state = CallState.ERROR
            try:
                self.session_store.save(session, session.version)
            except (StaleSessionError, StorageError) as save_error:
                logger.error(
                    "error_state_not_saved",
                    error_type=type(save_error).__name__,
                    error_message=str(save_error)
                )
        return self._error_response(session.language)

    def _error_response(self, language: Optional[str]) -> TurnResponse:
        try:
            message = self.scripts.get("error", language)
            locale = locale_code(language)
        except (ScriptNotFoundError, StorageError) as e:
            logger.error(
                "error_script_unavailable",
                error_type=type(e).__name__,
                error_message=str(e)
            )
            message = GENERIC_APOLOGY
            locale = DEFAULT_LOCALE

        return TurnResponse(
            prompt=PROMPTS[CallState.ERROR],
            message=message,
            locale=locale,
            expects_input=False
        )
