"""
レポート CSV 出力のテスト
"""

import csv
import io
from datetime import date, datetime

from results_ivr.models import ReportRow
from results_ivr.reporting import REPORT_COLUMNS, generate_report_csv, rows_to_csv


class TestRowsToCsv:

    def test_empty_rows_produce_empty_string(self):
        assert rows_to_csv([]) == ""

    def test_header_and_values(self):
        row = ReportRow(
            patient_no="P-1",
            username="1234",
            password="5678",
            visit_date=date(2024, 3, 22),
            cosite="C01",
            infection="HIV",
            result_at_time="Negative",
            delivery_status="delivered",
            accessed_by="phone",
            date_accessed=datetime(2024, 3, 29, 10, 30),
            message="Your HIV test was negative."
        )

        records = list(csv.reader(io.StringIO(rows_to_csv([row]))))

        assert records[0] == REPORT_COLUMNS
        assert records[0][:4] == ["patient_no", "username", "password", "visit_date"]
        assert records[1] == [
            "P-1", "1234", "5678", "2024-03-22", "C01", "HIV", "Negative",
            "delivered", "phone", "2024-03-29T10:30:00", "Your HIV test was negative.",
        ]

    def test_missing_values_are_blank(self):
        row = ReportRow(
            patient_no="P-1",
            username="1234",
            password="5678",
            visit_date=date(2024, 3, 22),
            cosite="C01",
            infection="HIV",
            result_at_time=None,
            delivery_status="not_yet_delivered",
            accessed_by=None,
            date_accessed=None,
            message=None
        )

        records = list(csv.reader(io.StringIO(rows_to_csv([row]))))

        assert records[1][6] == ""
        assert records[1][8:] == ["", "", ""]


class TestGenerateReportCsv:

    def test_report_for_date_range(self, repository, visit, tests_by_name, statuses):
        result = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])
        delivery = repository.create_delivery("phone", "hello", datetime(2024, 3, 29, 9, 0))
        repository.attach_delivery(result, delivery)

        records = list(csv.reader(io.StringIO(
            generate_report_csv(repository, date(2024, 3, 1), date(2024, 3, 31))
        )))

        assert len(records) == 2
        assert records[1][0] == "P-1001"
        assert records[1][-1] == "hello"

    def test_report_outside_range_is_empty(self, repository, visit, tests_by_name, statuses):
        repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        assert generate_report_csv(repository, date(2024, 4, 1), date(2024, 4, 30)) == ""
