"""
表示フォーマットモジュール (Presentation Formatter Module)

言語とロケールの解決、音声合成向けの日付・数字・列挙の整形を行います。
状態を持たない関数だけで構成されます。
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional, Sequence, Tuple

from .models import Language


DEFAULT_LANGUAGE = Language.ENGLISH.value
DEFAULT_LOCALE = "en-US"

# キーパッドの数字 -> 言語
LANGUAGE_DIGITS: Dict[str, str] = {
    "1": Language.ENGLISH.value,
    "2": Language.SPANISH.value,
}

LANGUAGE_LOCALES: Dict[str, str] = {
    Language.ENGLISH.value: "en-US",
    Language.SPANISH.value: "es-MX",
}


@dataclass(frozen=True)
class LocaleConventions:
    """
    ロケールごとの日付・列挙の表記規則

    Attributes:
        weekdays: 曜日名 (月曜始まり)
        months: 月名 (1月始まり)
        ordinal_days: 日付に序数 (1st, 2nd...) を付けるかどうか
        two_words_connector: 2要素の列挙の区切り
        words_connector: 3要素以上の列挙の区切り
        last_word_connector: 3要素以上の列挙の最後の区切り
    """
    weekdays: Tuple[str, ...]
    months: Tuple[str, ...]
    ordinal_days: bool
    two_words_connector: str
    words_connector: str
    last_word_connector: str


LOCALE_CONVENTIONS: Dict[str, LocaleConventions] = {
    "en-US": LocaleConventions(
        weekdays=("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
        months=(
            "January", "February", "March", "April", "May", "June",
            "July", "August", "September", "October", "November", "December",
        ),
        ordinal_days=True,
        two_words_connector=" and ",
        words_connector=", ",
        last_word_connector=", and ",
    ),
    "es-MX": LocaleConventions(
        weekdays=("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"),
        months=(
            "enero", "febrero", "marzo", "abril", "mayo", "junio",
            "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
        ),
        ordinal_days=False,
        two_words_connector=" y ",
        words_connector=", ",
        last_word_connector=" y ",
    ),
}


def resolve_language(language: Optional[str]) -> str:
    """未設定・不明な言語は既定の言語 (英語) に解決する"""
    if language in LANGUAGE_LOCALES:
        return language
    return DEFAULT_LANGUAGE


def locale_code(language: Optional[str]) -> str:
    """
    言語から音声合成用のロケールコードを返す

    例外は送出しません。不明な言語は既定のロケールになります。

    Args:
        language: 内部の言語識別子 (english, spanish) または None

    Returns:
        ロケールコード (en-US, es-MX)
    """
    return LANGUAGE_LOCALES.get(resolve_language(language), DEFAULT_LOCALE)


def conventions_for(language: Optional[str]) -> LocaleConventions:
    return LOCALE_CONVENTIONS[locale_code(language)]


def ordinalize(number: int) -> str:
    """1 -> "1st", 2 -> "2nd", 11 -> "11th", 23 -> "23rd" """
    if 11 <= abs(number) % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(abs(number) % 10, "th")
    return f"{number}{suffix}"


def format_date(value: date, language: Optional[str] = None) -> str:
    """
    日付を読み上げ用に整形する

    英語: "Saturday, March 29th"
    スペイン語: "sábado, marzo 29"

    Args:
        value: 日付
        language: 言語識別子

    Returns:
        曜日と月名を含む日付文字列
    """
    conventions = conventions_for(language)
    weekday = conventions.weekdays[value.weekday()]
    month = conventions.months[value.month - 1]
    day = ordinalize(value.day) if conventions.ordinal_days else str(value.day)
    return f"{weekday}, {month} {day}"


def to_sentence(items: Sequence[str], language: Optional[str] = None) -> str:
    """
    項目をロケールに合わせた自然な列挙にする

    英語: "A", "A and B", "A, B, and C"
    スペイン語: "A y B", "A, B y C"
    """
    items = list(items)
    if not items:
        return ""
    if len(items) == 1:
        return items[0]

    conventions = conventions_for(language)
    if len(items) == 2:
        return conventions.two_words_connector.join(items)
    return (
        conventions.words_connector.join(items[:-1])
        + conventions.last_word_connector
        + items[-1]
    )


def space_digits(value: Optional[str]) -> str:
    """
    1文字ずつ空白で区切る

    "123" を "1 2 3" にすることで、音声合成が「百二十三」ではなく
    「いち、に、さん」と1桁ずつ読み上げます。
    """
    return " ".join(value or "").strip()
