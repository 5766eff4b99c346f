"""
テスト共通のフィクスチャ

一時ディレクトリの SQLite データベースに、クリニック・検査・ステータスと
既定のスクリプトを登録したリポジトリを提供します。
"""

from datetime import date

import pytest

from results_ivr.models import STATUS_COME_BACK, STATUS_PENDING, Clinic, Visit
from results_ivr.scripts import ScriptStore, load_scripts
from results_ivr.storage import SQLiteRepository


@pytest.fixture
def repository(tmp_path):
    """空のリポジトリ"""
    return SQLiteRepository(str(tmp_path / "test.db"))


@pytest.fixture
def clinic(repository):
    return repository.create_clinic(Clinic(
        id=None,
        code="C01",
        name="Downtown Clinic",
        hours_in_english="Monday to Friday, 9 to 5",
        hours_in_spanish="lunes a viernes, de 9 a 5",
    ))


@pytest.fixture
def tests_by_name(repository):
    return {name: repository.create_test(name) for name in ("Chlamydia", "Gonorrhea", "HIV")}


@pytest.fixture
def statuses(repository):
    return {
        label: repository.create_status(label)
        for label in ("Negative", "Positive", STATUS_PENDING, STATUS_COME_BACK)
    }


@pytest.fixture
def visit(repository, clinic):
    return repository.create_visit(Visit(
        id=None,
        patient_number="P-1001",
        clinic_id=clinic.id,
        username="1234",
        password="5678",
        visited_on=date(2024, 3, 22),
    ))


@pytest.fixture
def scripts(repository):
    """既定のスクリプトを登録したスクリプトストア"""
    load_scripts(repository)
    return ScriptStore(repository)
