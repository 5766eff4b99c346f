"""
NCCO Builder テストモジュール (NCCO Builder Test Module)

TalkAction / InputAction と、ターンの応答から NCCO を構築する
NCCOBuilder のユニットテストです。
"""

import pytest

from results_ivr.call_flow import TurnResponse
from results_ivr.config import Config
from results_ivr.ncco_builder import InputAction, NCCOBuilder, TalkAction


@pytest.fixture
def config():
    return Config(
        webhook_base_url="https://example.com/",
        answer_url="https://example.com/webhooks/answer",
        event_url="https://example.com/webhooks/event",
        database_path=":memory:",
        session_backend="memory",
        redis_url=None,
        session_ttl_seconds=3600,
        max_prompt_attempts=3,
        input_timeout=8,
        speech_style=2,
        delivery_method="phone",
        log_level="INFO"
    )


@pytest.fixture
def builder(config):
    return NCCOBuilder(config)


class TestTalkAction:
    """TalkAction dataclass のテスト"""

    def test_talk_action_default_values(self):
        action = TalkAction(text="Hello")

        assert action.to_dict() == {
            "action": "talk",
            "text": "Hello",
            "language": "en-US",
            "style": 0,
            "bargeIn": False
        }

    def test_talk_action_with_all_fields(self):
        action = TalkAction(text="Hola", language="es-MX", style=1, bargeIn=True)

        result = action.to_dict()

        assert result["language"] == "es-MX"
        assert result["style"] == 1
        assert result["bargeIn"] is True


class TestInputAction:
    """InputAction dataclass のテスト"""

    def test_input_action_to_dict(self):
        action = InputAction(eventUrl=["https://example.com/webhooks/input/welcome"], maxDigits=1, timeOut=5)

        assert action.to_dict() == {
            "action": "input",
            "type": ["dtmf"],
            "dtmf": {
                "maxDigits": 1,
                "submitOnHash": True,
                "timeOut": 5
            },
            "eventUrl": ["https://example.com/webhooks/input/welcome"],
            "eventMethod": "POST"
        }


class TestNCCOBuilder:
    """NCCOBuilder のテスト"""

    def test_input_url_includes_prompt(self, builder):
        assert builder.input_url("username") == "https://example.com/webhooks/input/username"

    def test_prompt_turn(self, builder):
        response = TurnResponse(prompt="welcome", message="Press 1.", locale="en-US")

        ncco = builder.build_turn_ncco(response)

        assert [action["action"] for action in ncco] == ["talk", "input"]
        assert ncco[0]["text"] == "Press 1."
        assert ncco[0]["style"] == 2
        assert ncco[0]["bargeIn"] is True
        assert ncco[1]["eventUrl"] == ["https://example.com/webhooks/input/welcome"]
        assert ncco[1]["dtmf"]["maxDigits"] == 1
        assert ncco[1]["dtmf"]["timeOut"] == 8

    def test_error_message_is_read_first(self, builder):
        response = TurnResponse(
            prompt="username",
            message="Enter your username.",
            locale="es-MX",
            error_message="Not found.",
            retry_count=1
        )

        ncco = builder.build_turn_ncco(response)

        assert [action["action"] for action in ncco] == ["talk", "talk", "input"]
        assert ncco[0]["text"] == "Not found."
        assert ncco[1]["text"] == "Enter your username."
        assert all(action["language"] == "es-MX" for action in ncco[:2])
        assert ncco[2]["dtmf"]["maxDigits"] == 20

    def test_retry_limit_stops_listening(self, builder):
        """やり直しが上限に達した場合は Input アクションを付けない"""
        response = TurnResponse(
            prompt="password",
            message="Enter your password.",
            locale="en-US",
            error_message="Wrong password.",
            retry_count=3
        )

        ncco = builder.build_turn_ncco(response)

        assert [action["action"] for action in ncco] == ["talk", "talk"]
        assert all(action["bargeIn"] is False for action in ncco)

    def test_error_turn_has_no_input(self, builder):
        response = TurnResponse(prompt="error", message="Sorry.", locale="en-US", expects_input=False)

        ncco = builder.build_turn_ncco(response)

        assert ncco == [TalkAction(text="Sorry.", style=2).to_dict()]

    def test_empty_message_is_skipped(self, builder):
        response = TurnResponse(prompt="repeat", message="", locale="en-US")

        ncco = builder.build_turn_ncco(response)

        assert [action["action"] for action in ncco] == ["input"]
