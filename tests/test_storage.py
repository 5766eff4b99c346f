"""
SQLiteRepository クラスのユニットテスト

クリニックの code 変更禁止と論理削除、受診・ステータスの検証、
検査ごとの最新結果、トランザクション、レポート行を確認します。
"""

import sqlite3
from datetime import date, datetime

import pytest

from results_ivr.models import Clinic, DeliveryStatus, Visit
from results_ivr.storage import (
    CLINIC_CODE_IMMUTABLE,
    RecordNotFoundError,
    SQLiteRepository,
    StorageError,
    ValidationError,
)


class TestSQLiteRepositoryInit:
    """SQLiteRepository 初期化のテスト"""

    def test_creates_tables_on_init(self, tmp_path):
        """正常系: 初期化時にテーブルが作成される"""
        db_path = tmp_path / "test.db"
        SQLiteRepository(str(db_path))

        conn = sqlite3.connect(str(db_path))
        names = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        conn.close()

        for table in ("clinics", "statuses", "tests", "visits", "results",
                      "deliveries", "result_deliveries", "scripts"):
            assert table in names

    def test_invalid_path_raises_storage_error(self, tmp_path):
        """異常系: 開けないパスは StorageError"""
        with pytest.raises(StorageError):
            SQLiteRepository(str(tmp_path / "missing" / "test.db"))


class TestClinics:
    """クリニックの管理"""

    def test_create_and_get_clinic(self, repository, clinic):
        found = repository.get_clinic(clinic.id)

        assert found.code == "C01"
        assert found.name == "Downtown Clinic"
        assert found.deleted_at is None

    def test_update_clinic_name(self, repository, clinic):
        clinic.name = "Uptown Clinic"
        repository.update_clinic(clinic)

        assert repository.get_clinic(clinic.id).name == "Uptown Clinic"

    def test_changing_code_is_rejected(self, repository, clinic):
        """異常系: code は作成後に変更できない"""
        clinic.code = "C99"

        with pytest.raises(ValidationError) as exc_info:
            repository.update_clinic(clinic)

        assert exc_info.value.errors["code"][0] == CLINIC_CODE_IMMUTABLE
        assert CLINIC_CODE_IMMUTABLE == "Change of clinic code is not allowed."
        assert repository.get_clinic(clinic.id).code == "C01"

    def test_blank_fields_are_rejected(self, repository):
        with pytest.raises(ValidationError) as exc_info:
            repository.create_clinic(Clinic(
                id=None, code="", name="Clinic", hours_in_english="", hours_in_spanish="x"
            ))

        assert "code" in exc_info.value.errors
        assert "hours_in_english" in exc_info.value.errors

    def test_duplicate_name_is_rejected(self, repository, clinic):
        with pytest.raises(ValidationError) as exc_info:
            repository.create_clinic(Clinic(
                id=None,
                code="C02",
                name="Downtown Clinic",
                hours_in_english="a",
                hours_in_spanish="b",
            ))

        assert exc_info.value.errors["name"] == ["has already been taken"]

    def test_update_missing_clinic_raises_not_found(self, repository):
        with pytest.raises(RecordNotFoundError):
            repository.update_clinic(Clinic(
                id=999, code="X", name="X", hours_in_english="a", hours_in_spanish="b"
            ))

    def test_soft_delete_hides_clinic(self, repository, clinic):
        repository.delete_clinic(clinic)

        assert clinic.is_deleted
        assert repository.get_clinic(clinic.id) is None
        assert repository.get_clinic(clinic.id, include_deleted=True).is_deleted
        assert repository.list_clinics() == []
        assert len(repository.list_clinics(include_deleted=True)) == 1

    def test_restore_clinic(self, repository, clinic):
        repository.delete_clinic(clinic)
        repository.restore_clinic(clinic)

        assert repository.get_clinic(clinic.id).deleted_at is None

    def test_visit_clinic_ignores_soft_delete(self, repository, clinic, visit):
        """論理削除されたクリニックの受診からもクリニックを取得できる"""
        repository.delete_clinic(clinic)

        found = repository.get_visit_clinic(visit)

        assert found.id == clinic.id
        assert found.is_deleted

    def test_list_clinics_ordered_by_name(self, repository, clinic):
        repository.create_clinic(Clinic(
            id=None, code="C02", name="Airport Clinic", hours_in_english="a", hours_in_spanish="b"
        ))

        assert [c.name for c in repository.list_clinics()] == ["Airport Clinic", "Downtown Clinic"]

    def test_clinic_hours_by_language(self, repository, clinic):
        assert repository.clinic_hours(clinic, "spanish") == "lunes a viernes, de 9 a 5"
        assert repository.clinic_hours(clinic, "english") == "Monday to Friday, 9 to 5"
        assert repository.clinic_hours(clinic, None) == "Monday to Friday, 9 to 5"


class TestStatusesAndTests:

    def test_status_uniqueness_is_case_insensitive(self, repository):
        repository.create_status("Negative")

        with pytest.raises(ValidationError) as exc_info:
            repository.create_status("NEGATIVE")

        assert exc_info.value.errors["status"] == ["has already been taken"]

    def test_blank_status_is_rejected(self, repository):
        with pytest.raises(ValidationError):
            repository.create_status("  ")

    def test_duplicate_test_is_rejected(self, repository):
        repository.create_test("HIV")

        with pytest.raises(ValidationError):
            repository.create_test("HIV")


class TestVisits:
    """受診の登録と検索"""

    def test_find_visit_by_username(self, repository, visit):
        found = repository.find_visit_by_username("1234")

        assert found.id == visit.id
        assert found.visited_on == date(2024, 3, 22)

    def test_find_visit_by_unknown_username(self, repository, visit):
        assert repository.find_visit_by_username("9999") is None
        assert repository.find_visit_by_username("") is None

    def test_find_visit_by_credentials(self, repository, visit):
        assert repository.find_visit_by_credentials("1234", "5678").id == visit.id
        assert repository.find_visit_by_credentials("1234", "0000") is None

    def test_username_lookup_spans_clinics(self, repository, clinic, visit):
        other = repository.create_clinic(Clinic(
            id=None, code="C02", name="Airport Clinic", hours_in_english="a", hours_in_spanish="b"
        ))
        second = repository.create_visit(Visit(
            id=None,
            patient_number="P-2",
            clinic_id=other.id,
            username="1234",
            password="1111",
            visited_on=date(2024, 3, 1),
        ))

        assert repository.find_visit_by_credentials("1234", "1111").id == second.id
        assert repository.find_visit_by_username("1234") is not None

    def test_duplicate_credentials_are_rejected(self, repository, clinic, visit):
        with pytest.raises(ValidationError) as exc_info:
            repository.create_visit(Visit(
                id=None,
                patient_number="P-2",
                clinic_id=clinic.id,
                username="1234",
                password="5678",
                visited_on=date(2024, 3, 1),
            ))

        assert exc_info.value.errors["username"] == ["has already been taken"]

    def test_missing_fields_are_rejected(self, repository, clinic):
        with pytest.raises(ValidationError) as exc_info:
            repository.create_visit(Visit(
                id=None,
                patient_number="",
                clinic_id=clinic.id,
                username="",
                password="1",
                visited_on=date(2024, 3, 1),
            ))

        assert set(exc_info.value.errors) == {"patient_number", "username"}

    def test_unknown_clinic_is_rejected(self, repository):
        with pytest.raises(ValidationError) as exc_info:
            repository.create_visit(Visit(
                id=None,
                patient_number="P-2",
                clinic_id=42,
                username="1",
                password="2",
                visited_on=date(2024, 3, 1),
            ))

        assert "clinic_id" in exc_info.value.errors

    def test_get_visit_not_found(self, repository):
        with pytest.raises(RecordNotFoundError) as exc_info:
            repository.get_visit(42)

        assert exc_info.value.entity == "Visit"


class TestResults:
    """検査結果と配信記録"""

    def test_latest_results_by_test(self, repository, visit, tests_by_name, statuses):
        repository.add_result(visit, tests_by_name["HIV"], statuses["Pending"])
        repository.add_result(visit, tests_by_name["Chlamydia"], statuses["Negative"])
        repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        results = repository.latest_results_by_test(visit)

        assert [(r.test_name, r.status) for r in results] == [
            ("HIV", "Negative"),
            ("Chlamydia", "Negative"),
        ]

    def test_result_without_status(self, repository, visit, tests_by_name):
        repository.add_result(visit, tests_by_name["HIV"])

        results = repository.latest_results_by_test(visit)

        assert results[0].status is None
        assert results[0].status_id is None
        assert results[0].delivery_status == DeliveryStatus.NOT_YET_DELIVERED

    def test_update_delivery_status(self, repository, visit, tests_by_name, statuses):
        result = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        repository.update_delivery_status(result, DeliveryStatus.DELIVERED)

        assert result.delivery_status == DeliveryStatus.DELIVERED
        assert repository.get_result(result.id).delivery_status == DeliveryStatus.DELIVERED

    def test_attach_delivery_is_idempotent(self, repository, visit, tests_by_name, statuses):
        result = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])
        delivery = repository.create_delivery("phone", "hello", datetime(2024, 3, 29, 10, 0))

        repository.attach_delivery(result, delivery)
        repository.attach_delivery(result, delivery)

        deliveries = repository.deliveries_for_result(result)
        assert len(deliveries) == 1
        assert deliveries[0].message == "hello"
        assert deliveries[0].delivered_at == datetime(2024, 3, 29, 10, 0)


class TestTransaction:
    """トランザクションスコープ"""

    def test_commits_on_success(self, repository, visit, tests_by_name, statuses):
        result = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        with repository.transaction():
            delivery = repository.create_delivery("phone", "msg", datetime.now())
            repository.attach_delivery(result, delivery)

        assert len(repository.deliveries_for_result(result)) == 1

    def test_rolls_back_on_error(self, repository, visit, tests_by_name, statuses):
        result = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.update_delivery_status(result, DeliveryStatus.DELIVERED)
                repository.create_delivery("phone", "msg", datetime.now())
                raise RuntimeError("boom")

        assert repository.get_result(result.id).delivery_status == DeliveryStatus.NOT_YET_DELIVERED
        assert repository.deliveries_for_result(result) == []

    def test_nested_scope_joins_outer(self, repository, visit, tests_by_name, statuses):
        result = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        with pytest.raises(RuntimeError):
            with repository.transaction():
                with repository.transaction():
                    repository.update_delivery_status(result, DeliveryStatus.DELIVERED)
                raise RuntimeError("boom")

        assert repository.get_result(result.id).delivery_status == DeliveryStatus.NOT_YET_DELIVERED


class TestScripts:

    def test_get_script_without_fallback(self, repository):
        repository.upsert_script("welcome", "english", "Hello")

        assert repository.get_script("welcome", "english") == "Hello"
        assert repository.get_script("welcome", "spanish") is None

    def test_upsert_replaces_message(self, repository):
        repository.upsert_script("welcome", "english", "Hello")
        repository.upsert_script("welcome", "english", "Hi")

        assert repository.get_script("welcome", "english") == "Hi"


class TestReportRows:
    """レポート行の取得"""

    def test_one_row_per_delivery_and_undelivered_result(self, repository, visit, tests_by_name, statuses):
        hiv = repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])
        repository.add_result(visit, tests_by_name["Chlamydia"], statuses["Pending"])
        for hour in (10, 11):
            delivery = repository.create_delivery("phone", f"message {hour}", datetime(2024, 3, 29, hour))
            repository.attach_delivery(hiv, delivery)

        rows = repository.report_rows(date(2024, 3, 1), date(2024, 3, 31))

        assert len(rows) == 3
        assert [row.message for row in rows] == ["message 10", "message 11", None]
        assert rows[0].patient_no == "P-1001"
        assert rows[0].cosite == "C01"
        assert rows[0].infection == "HIV"
        assert rows[0].result_at_time == "Negative"
        assert rows[0].accessed_by == "phone"
        assert rows[0].date_accessed == datetime(2024, 3, 29, 10)
        assert rows[2].infection == "Chlamydia"
        assert rows[2].accessed_by is None
        assert rows[2].date_accessed is None

    def test_filters_by_visit_date(self, repository, visit, tests_by_name, statuses):
        repository.add_result(visit, tests_by_name["HIV"], statuses["Negative"])

        assert repository.report_rows(date(2024, 3, 23), date(2024, 3, 31)) == []
        assert len(repository.report_rows(date(2024, 3, 22), date(2024, 3, 22))) == 1
