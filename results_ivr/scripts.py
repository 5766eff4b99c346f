"""
スクリプトモジュール (Script Store Module)

言語別メッセージテンプレートの取得とレンダリングを提供します。
テンプレートは Jinja2 で描画し、未定義の変数はエラーとして扱います。
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from .formatter import resolve_language
from .storage import Repository


class ScriptNotFoundError(Exception):
    """
    スクリプト未登録エラー

    Attributes:
        name: スクリプト名
        language: 言語
    """

    def __init__(self, name: str, language: str):
        super().__init__(f"Script {name!r} not found for language {language!r}")
        self.name = name
        self.language = language


class TemplateRenderError(Exception):
    """
    テンプレート描画エラー

    Attributes:
        reason: missing_variable または parse_failure
    """

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


DEFAULT_SCRIPTS_PATH = Path(__file__).with_name("default_scripts.json")

_environment = Environment(undefined=StrictUndefined, autoescape=False)


def render(template: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """
    テンプレートを変数で描画する

    Args:
        template: テンプレート文字列 (例: "Hours: {{ clinic_hours }}")
        variables: 変数名 -> 値

    Returns:
        描画された文字列

    Raises:
        TemplateRenderError: 構文エラー、または未定義の変数を参照した場合
    """
    try:
        return _environment.from_string(template).render(**(variables or {}))
    except TemplateSyntaxError as e:
        raise TemplateRenderError(
            f"Invalid template syntax: {e.message}", reason="parse_failure"
        ) from e
    except UndefinedError as e:
        raise TemplateRenderError(
            f"Missing template variable: {e}", reason="missing_variable"
        ) from e


Renderer = Callable[[str, Dict[str, Any]], str]


class ScriptStore:
    """
    スクリプト (言語別メッセージテンプレート) の取得

    lookup() は見つからない場合に None を返し、get() は
    ScriptNotFoundError を送出します。どちらも別の言語への
    フォールバックは行いません。
    """

    def __init__(self, repository: Repository, renderer: Renderer = render):
        self.repository = repository
        self.renderer = renderer

    def lookup(self, name: str, language: Optional[str] = None) -> Optional[str]:
        return self.repository.get_script(name, resolve_language(language))

    def get(self, name: str, language: Optional[str] = None) -> str:
        language = resolve_language(language)
        template = self.repository.get_script(name, language)
        if template is None:
            raise ScriptNotFoundError(name, language)
        return template

    def render(self, name: str, language: Optional[str] = None, variables: Optional[Dict[str, Any]] = None) -> str:
        """スクリプトを取得して描画する"""
        return self.renderer(self.get(name, language), variables or {})


def load_scripts(repository: Repository, path: Union[str, Path] = DEFAULT_SCRIPTS_PATH) -> int:
    """
    JSON ファイルからスクリプトを登録する

    ファイル形式: {"<スクリプト名>": {"<言語>": "<テンプレート>", ...}, ...}
    既存の (名前, 言語) は上書きされます。

    Returns:
        登録したスクリプトの数
    """
    with open(path, "r", encoding="utf-8") as f:
        scripts = json.load(f)

    count = 0
    with repository.transaction():
        for name, messages in scripts.items():
            for language, message in messages.items():
                repository.upsert_script(name, language, message)
                count += 1
    return count
