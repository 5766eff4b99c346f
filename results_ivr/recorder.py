"""
配信記録モジュール (Delivery Recorder Module)

合成したメッセージの配信記録を作成し、対象の結果に関連付けます。
"""

from datetime import datetime
from typing import Callable

import structlog

from .composer import Composition
from .models import Delivery
from .storage import Repository


logger = structlog.get_logger(__name__)


class DeliveryRecorder:
    """
    配信記録を永続化するサービス

    配信ステータスの更新、配信記録の作成、結果への関連付けを1つの
    トランザクションで行います。途中で失敗した場合はすべて
    ロールバックされます。配信記録は追加のみで、既存の配信記録を
    上書き・削除することはありません。
    """

    def __init__(self, repository: Repository, now: Callable[[], datetime] = datetime.now):
        self.repository = repository
        self.now = now

    def record(self, composition: Composition, delivery_method: str) -> Delivery:
        """
        配信を記録する

        Args:
            composition: ResultMessageComposer.compose() の結果
            delivery_method: 配信チャネル (phone など)

        Returns:
            作成された配信記録

        Raises:
            StorageError: 書き込みに失敗した場合 (すべてロールバック済み)
        """
        with self.repository.transaction():
            for result in composition.results:
                if result.delivery_status != composition.delivery_status:
                    self.repository.update_delivery_status(result, composition.delivery_status)

            delivery = self.repository.create_delivery(
                method=delivery_method,
                message=composition.message,
                delivered_at=self.now()
            )
            for result in composition.results:
                self.repository.attach_delivery(result, delivery)

        logger.info(
            "delivery_recorded",
            delivery_id=delivery.id,
            delivery_method=delivery_method,
            delivery_status=composition.delivery_status.value,
            result_ids=[result.id for result in composition.results]
        )
        return delivery
