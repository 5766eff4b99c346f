"""
データモデルモジュール (Data Models Module)

クリニック、受診、検査結果、配信記録のデータモデルを定義します。
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


# 結果ステータスのラベル (statuses.status)
STATUS_COME_BACK = "Come back to clinic"
STATUS_PENDING = "Pending"


class DeliveryStatus(str, Enum):
    """
    検査結果の配信ステータス

    Attributes:
        NOT_YET_DELIVERED: まだ配信されていない (初期値)
        NOT_DELIVERED: 配信できなかった (保留中・技術的エラー)
        COME_BACK: 来院を依頼した
        DELIVERED: 結果を伝えた
    """
    NOT_YET_DELIVERED = "not_yet_delivered"
    NOT_DELIVERED = "not_delivered"
    COME_BACK = "come_back"
    DELIVERED = "delivered"


class Language(str, Enum):
    """発信者が選択できる言語"""
    ENGLISH = "english"
    SPANISH = "spanish"


@dataclass
class Clinic:
    """
    クリニックデータモデル

    code は作成後に変更できません。削除は論理削除 (deleted_at) です。

    Attributes:
        id: 主キー
        code: クリニックコード (一意、変更不可)
        name: クリニック名 (一意)
        hours_in_english: 英語の診療時間案内
        hours_in_spanish: スペイン語の診療時間案内
        deleted_at: 論理削除日時 (未削除は None)
    """
    id: Optional[int]
    code: str
    name: str
    hours_in_english: str
    hours_in_spanish: str
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def hours_for_language(self, language: Optional[str]) -> str:
        """言語に対応する診療時間案内を返す (不明な言語は英語)"""
        if language == Language.SPANISH.value:
            return self.hours_in_spanish
        return self.hours_in_english


@dataclass
class Visit:
    """
    受診データモデル

    Attributes:
        id: 主キー
        patient_number: 患者番号
        clinic_id: クリニックID
        username: 電話で入力するユーザー名 (数字)
        password: 電話で入力するパスワード (数字)
        visited_on: 受診日
    """
    id: Optional[int]
    patient_number: str
    clinic_id: int
    username: str
    password: str
    visited_on: date


@dataclass
class Test:
    """検査種別 (例: HIV, Chlamydia)"""
    id: Optional[int]
    name: str

    # pytest がテストクラスとして収集しないようにする
    __test__ = False


@dataclass
class Status:
    """検査結果ステータス (大文字小文字を区別せず一意)"""
    id: Optional[int]
    status: str


@dataclass
class Result:
    """
    検査結果データモデル

    status_id が None の結果は不正なレコードとして扱われます。

    Attributes:
        id: 主キー (追加順)
        visit_id: 受診ID
        test_id: 検査ID
        status_id: ステータスID (None 可)
        delivery_status: 配信ステータス
        test_name: 検査名 (結合して取得)
        status: ステータスラベル (結合して取得、None 可)
    """
    id: Optional[int]
    visit_id: int
    test_id: int
    status_id: Optional[int]
    delivery_status: DeliveryStatus = DeliveryStatus.NOT_YET_DELIVERED
    test_name: str = ""
    status: Optional[str] = None


@dataclass
class Delivery:
    """
    配信記録データモデル

    一度作成された配信記録は変更されません。

    Attributes:
        id: 主キー
        delivered_at: 配信日時
        delivery_method: 配信チャネル (phone など)
        message: 配信したメッセージ本文
    """
    id: Optional[int]
    delivered_at: datetime
    delivery_method: str
    message: str


@dataclass
class ReportRow:
    """レポート出力の1行 ((受診, 結果, 配信) ごと)"""
    patient_no: str
    username: str
    password: str
    visit_date: date
    cosite: str
    infection: str
    result_at_time: Optional[str]
    delivery_status: str
    accessed_by: Optional[str]
    date_accessed: Optional[datetime]
    message: Optional[str]
