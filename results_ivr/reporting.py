"""
レポートモジュール (Reporting Module)

受診・検査結果・配信記録を CSV に出力します。
(受診, 結果, 配信) ごとに1行、配信のない結果は配信項目を空にした1行です。
"""

import csv
import dataclasses
import io
from datetime import date
from typing import List

from .models import ReportRow
from .storage import Repository


REPORT_COLUMNS = [f.name for f in dataclasses.fields(ReportRow)]


def rows_to_csv(rows: List[ReportRow]) -> str:
    """
    レポート行を CSV 文字列にする

    行がない場合はヘッダーも出力せず空文字列を返します。
    """
    if not rows:
        return ""

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(REPORT_COLUMNS)
    for row in rows:
        writer.writerow([
            "" if value is None else value.isoformat() if isinstance(value, date) else value
            for value in dataclasses.astuple(row)
        ])
    return output.getvalue()


def generate_report_csv(repository: Repository, start_date: date, end_date: date) -> str:
    """受診日が start_date から end_date (両端含む) の受診のレポート CSV を作成"""
    return rows_to_csv(repository.report_rows(start_date, end_date))
