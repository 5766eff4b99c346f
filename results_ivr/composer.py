"""
結果メッセージ合成モジュール (Result Message Composer Module)

受診の検査ごとの最新結果を調べ、優先順位に従って1つの言語別メッセージを
合成します。

優先順位:
    1. ステータスのない結果がある -> 技術的エラー
    2. "Come back to clinic" の結果がある -> 来院依頼
    3. "Pending" の結果がある -> 保留中
    4. それ以外 -> 検査ごとの結果メッセージ
"""

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Callable, List, Optional

import structlog

from .formatter import format_date, resolve_language, to_sentence
from .models import STATUS_COME_BACK, STATUS_PENDING, DeliveryStatus, Result, Visit
from .scripts import ScriptStore
from .storage import Repository


logger = structlog.get_logger(__name__)

PENDING_RESULTS_DAYS = 7


class Branch(str, Enum):
    """メッセージ選択の分岐 (優先順)"""
    MALFORMED = "malformed"
    COME_BACK = "come_back"
    PENDING = "pending"
    DELIVERED = "delivered"


@dataclass
class Composition:
    """
    合成結果

    Attributes:
        message: 配信チャネルのマスターテンプレートで包んだ最終メッセージ
        branch: 選択された分岐
        branch_message: マスターテンプレートで包む前のメッセージ
        results: 対象となった検査ごとの最新結果
        delivery_status: 各結果に設定する配信ステータス
    """
    message: str
    branch: Branch
    branch_message: str
    results: List[Result] = field(default_factory=list)
    delivery_status: DeliveryStatus = DeliveryStatus.NOT_DELIVERED


def result_script_name(result: Result) -> str:
    """検査結果ごとのスクリプト名 (例: "chlamydia_negative")"""
    raw = f"{result.test_name}_{result.status or ''}".lower()
    return re.sub(r"[^a-z0-9]+", "_", raw).strip("_")


class ResultMessageComposer:
    """
    受診の結果メッセージを合成するサービス

    状態を持たず、1ターンの間だけリポジトリから借りたデータを扱います。
    配信ステータスの書き込みは Composition として返し、配信記録と同じ
    トランザクションで DeliveryRecorder が行います。

    Attributes:
        repository: リポジトリ
        scripts: スクリプトストア
        today: 今日の日付を返す関数 (テストで差し替え可能)
    """

    def __init__(
        self,
        repository: Repository,
        scripts: ScriptStore,
        today: Callable[[], date] = date.today
    ):
        self.repository = repository
        self.scripts = scripts
        self.today = today

    def compose(self, visit: Visit, language: Optional[str], delivery_method: str) -> Composition:
        """
        受診の結果メッセージを合成する

        Args:
            visit: 認証済みの受診
            language: 発信者が選択した言語
            delivery_method: 配信チャネル (phone など)

        Returns:
            Composition

        Raises:
            ScriptNotFoundError: マスターテンプレートなど必須のスクリプトがない場合
            TemplateRenderError: テンプレートの描画に失敗した場合
        """
        language = resolve_language(language)
        clinic = self.repository.get_visit_clinic(visit)
        clinic_hours = self.repository.clinic_hours(clinic, language)
        master = self.scripts.get(f"{delivery_method}_master", language)
        results = self.repository.latest_results_by_test(visit)

        branch, branch_message, delivery_status = self._select_branch(
            visit, results, language, clinic_hours
        )

        message = self.scripts.renderer(master, {
            "clinic_name": clinic.name,
            "visit_date": format_date(visit.visited_on, language),
            "test_names": to_sentence([result.test_name for result in results], language),
            "message": branch_message,
        })

        logger.info(
            "results_message_composed",
            visit_id=visit.id,
            branch=branch.value,
            result_count=len(results),
            language=language,
            delivery_method=delivery_method
        )

        return Composition(
            message=message,
            branch=branch,
            branch_message=branch_message,
            results=results,
            delivery_status=delivery_status
        )

    def _select_branch(self, visit: Visit, results: List[Result], language: str, clinic_hours: str):
        if any(result.status is None for result in results):
            return (
                Branch.MALFORMED,
                self.scripts.get("technical_error", language),
                DeliveryStatus.NOT_DELIVERED,
            )

        if any(result.status == STATUS_COME_BACK for result in results):
            return (
                Branch.COME_BACK,
                self.scripts.render("come_back", language, {"clinic_hours": clinic_hours}),
                DeliveryStatus.COME_BACK,
            )

        if any(result.status == STATUS_PENDING for result in results):
            ready_on = format_date(self.results_ready_on(visit), language)
            return (
                Branch.PENDING,
                self.scripts.render("pending", language, {"results_ready_on": ready_on}),
                DeliveryStatus.NOT_DELIVERED,
            )

        templates = [self.scripts.lookup(result_script_name(result), language) for result in results]
        missing = [
            result_script_name(result)
            for result, template in zip(results, templates)
            if template is None
        ]
        if missing:
            logger.warning(
                "result_script_missing",
                visit_id=visit.id,
                scripts=missing,
                language=language
            )
            return (
                Branch.MALFORMED,
                self.scripts.get("technical_error", language),
                DeliveryStatus.NOT_DELIVERED,
            )

        variables = {"clinic_hours": clinic_hours}
        message = "\n\n".join(self.scripts.renderer(template, variables) for template in templates)
        return Branch.DELIVERED, message, DeliveryStatus.DELIVERED

    def results_ready_on(self, visit: Visit) -> date:
        """受診日の7日後と明日のうち、遅い方"""
        tomorrow = self.today() + timedelta(days=1)
        return max(visit.visited_on + timedelta(days=PENDING_RESULTS_DAYS), tomorrow)
