"""
NCCO Builder モジュール (NCCO Builder Module)

通話フローの応答 (TurnResponse) から、Vonage Voice API の通話を制御する
NCCO (Nexmo Call Control Object) を構築します。
"""

from dataclasses import dataclass
from typing import Any, Dict, List, TYPE_CHECKING

if TYPE_CHECKING:
    from results_ivr.call_flow import TurnResponse
    from results_ivr.config import Config


# プロンプトごとの最大入力桁数
PROMPT_MAX_DIGITS = {
    "welcome": 1,
    "username": 20,
    "password": 20,
    "repeat": 1,
}


@dataclass
class TalkAction:
    """
    Talk NCCOアクション

    発信者に音声メッセージを再生するためのアクションです。

    Attributes:
        text: 再生するテキストメッセージ (必須)
        language: 音声の言語コード (デフォルト: en-US)
        style: 音声スタイル番号 (デフォルト: 0)
        bargeIn: 発信者がキー入力で中断可能かどうか (デフォルト: False)
    """
    text: str
    language: str = "en-US"
    style: int = 0
    bargeIn: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": "talk",
            "text": self.text,
            "language": self.language,
            "style": self.style,
            "bargeIn": self.bargeIn
        }


@dataclass
class InputAction:
    """
    Input NCCOアクション

    発信者のキーパッド入力 (DTMF) を受け付け、eventUrl に送信します。

    Attributes:
        eventUrl: 入力結果を受け取る Webhook URLリスト (必須)
        maxDigits: 最大入力桁数
        submitOnHash: # キーで入力を確定するかどうか
        timeOut: 最後の入力から確定までの秒数
    """
    eventUrl: List[str]
    maxDigits: int = 20
    submitOnHash: bool = True
    timeOut: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": "input",
            "type": ["dtmf"],
            "dtmf": {
                "maxDigits": self.maxDigits,
                "submitOnHash": self.submitOnHash,
                "timeOut": self.timeOut
            },
            "eventUrl": self.eventUrl,
            "eventMethod": "POST"
        }


class NCCOBuilder:
    """
    NCCOを構築するビルダークラス

    エラーメッセージ、プロンプトの Talk アクションと、次のターンを受け取る
    Input アクションを生成します。同じプロンプトのやり直しが
    max_prompt_attempts 回に達した場合は Input アクションを付けず、
    読み上げ後に通話が終了します。

    Attributes:
        config: アプリケーション設定オブジェクト
    """

    def __init__(self, config: 'Config'):
        self.config = config

    def input_url(self, prompt: str) -> str:
        return f"{self.config.webhook_base_url.rstrip('/')}/webhooks/input/{prompt}"

    def build_turn_ncco(self, response: 'TurnResponse') -> List[Dict[str, Any]]:
        """
        ターンの応答から NCCO を構築

        Args:
            response: CallFlow.handle_turn() の応答

        Returns:
            NCCOアクションのリスト
        """
        listen = response.expects_input and response.retry_count < self.config.max_prompt_attempts

        ncco = []
        for text in (response.error_message, response.message):
            if text:
                ncco.append(self._build_talk_action(text, response.locale, listen))

        if listen:
            ncco.append(self._build_input_action(response.prompt))
        return ncco

    def _build_talk_action(self, text: str, locale: str, barge_in: bool) -> Dict[str, Any]:
        talk = TalkAction(
            text=text,
            language=locale,
            style=self.config.speech_style,
            bargeIn=barge_in
        )
        return talk.to_dict()

    def _build_input_action(self, prompt: str) -> Dict[str, Any]:
        action = InputAction(
            eventUrl=[self.input_url(prompt)],
            maxDigits=PROMPT_MAX_DIGITS.get(prompt, 20),
            submitOnHash=True,
            timeOut=self.config.input_timeout
        )
        return action.to_dict()
