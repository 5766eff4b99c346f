"""
ストレージモジュール (Storage Module)

クリニック・受診・検査結果・配信記録・スクリプトの永続化を抽象化する
リポジトリレイヤーを提供します。
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, List, Optional

from .models import (
    Clinic,
    Delivery,
    DeliveryStatus,
    ReportRow,
    Result,
    Status,
    Test,
    Visit,
)


class StorageError(Exception):
    """
    ストレージエラー

    データベース操作中に発生した I/O エラーを表す例外クラスです。
    """
    pass


class RecordNotFoundError(Exception):
    """指定されたレコードが存在しない"""

    def __init__(self, entity: str, key: object):
        super().__init__(f"Couldn't find {entity} with {key!r}")
        self.entity = entity
        self.key = key


class ValidationError(Exception):
    """
    バリデーションエラー

    エンティティの保存前検証に失敗した場合に発生します。

    Attributes:
        entity: エンティティ名 (clinic, visit など)
        errors: フィールド名 -> エラーメッセージのリスト
    """

    def __init__(self, entity: str, errors: Dict[str, List[str]]):
        details = "; ".join(
            f"{field} {message}"
            for field, messages in errors.items()
            for message in messages
        )
        super().__init__(f"Validation failed for {entity}: {details}")
        self.entity = entity
        self.errors = errors


CLINIC_CODE_IMMUTABLE = "Change of clinic code is not allowed."
BLANK = "can't be blank"
TAKEN = "has already been taken"


class Repository(ABC):
    """
    リポジトリの抽象基底クラス

    通話フロー・メッセージ合成・配信記録が利用するクエリ契約と、
    エンティティ管理操作を定義します。「見つからない」は None または
    RecordNotFoundError、I/O 障害は StorageError で区別します。
    """

    @abstractmethod
    def transaction(self):
        """
        トランザクションスコープのコンテキストマネージャー

        スコープ内の書き込みはすべてコミットされるか、すべてロールバック
        されます。ネストした場合は外側のスコープに合流します。
        """
        pass

    # ----------------------------------------------------------------------
    # 通話フロー用クエリ
    # ----------------------------------------------------------------------

    @abstractmethod
    def find_visit_by_username(self, username: str) -> Optional[Visit]:
        """
        ユーザー名で受診を検索

        クリニックに関係なく、いずれかの受診のユーザー名と一致すれば
        その受診を返します。

        Args:
            username: 入力されたユーザー名

        Returns:
            受診データモデル、見つからない場合は None
        """
        pass

    @abstractmethod
    def find_visit_by_credentials(self, username: str, password: str) -> Optional[Visit]:
        """
        ユーザー名とパスワードの組で受診を検索

        Returns:
            受診データモデル、見つからない場合は None
        """
        pass

    @abstractmethod
    def get_visit(self, visit_id: int) -> Visit:
        """
        ID で受診を取得

        Raises:
            RecordNotFoundError: 受診が存在しない場合
        """
        pass

    @abstractmethod
    def get_visit_clinic(self, visit: Visit) -> Clinic:
        """
        受診のクリニックを取得

        論理削除されたクリニックも返します。

        Raises:
            RecordNotFoundError: クリニックが存在しない場合
        """
        pass

    @abstractmethod
    def latest_results_by_test(self, visit: Visit) -> List[Result]:
        """
        検査ごとの最新結果を取得

        同じ検査に複数の結果がある場合、最後に追加されたものだけを返します。
        並び順は各検査が最初に現れた順です。

        Args:
            visit: 受診データモデル

        Returns:
            検査名・ステータスラベルを結合した結果のリスト
        """
        pass

    @abstractmethod
    def create_delivery(self, method: str, message: str, delivered_at: datetime) -> Delivery:
        """配信記録を作成"""
        pass

    @abstractmethod
    def attach_delivery(self, result: Result, delivery: Delivery) -> None:
        """結果に配信記録を関連付ける (既存の関連付けは変更しない)"""
        pass

    @abstractmethod
    def update_delivery_status(self, result: Result, status: DeliveryStatus) -> None:
        """結果の配信ステータスを更新"""
        pass

    @abstractmethod
    def get_script(self, name: str, language: str) -> Optional[str]:
        """
        スクリプト (メッセージテンプレート) を取得

        他の言語へのフォールバックは行いません。

        Returns:
            テンプレート文字列、見つからない場合は None
        """
        pass

    def clinic_hours(self, clinic: Clinic, language: Optional[str]) -> str:
        """クリニックの言語別診療時間案内を返す"""
        return clinic.hours_for_language(language)

    # ----------------------------------------------------------------------
    # エンティティ管理
    # ----------------------------------------------------------------------

    @abstractmethod
    def create_clinic(self, clinic: Clinic) -> Clinic:
        pass

    @abstractmethod
    def update_clinic(self, clinic: Clinic) -> Clinic:
        """
        クリニックを更新

        Raises:
            ValidationError: code を変更しようとした場合、または必須項目が
                空・一意制約違反の場合
            RecordNotFoundError: クリニックが存在しない場合
        """
        pass

    @abstractmethod
    def get_clinic(self, clinic_id: int, include_deleted: bool = False) -> Optional[Clinic]:
        pass

    @abstractmethod
    def list_clinics(self, include_deleted: bool = False) -> List[Clinic]:
        pass

    @abstractmethod
    def delete_clinic(self, clinic: Clinic) -> Clinic:
        """クリニックを論理削除"""
        pass

    @abstractmethod
    def restore_clinic(self, clinic: Clinic) -> Clinic:
        """論理削除されたクリニックを復元"""
        pass

    @abstractmethod
    def create_status(self, label: str) -> Status:
        pass

    @abstractmethod
    def create_test(self, name: str) -> Test:
        pass

    @abstractmethod
    def create_visit(self, visit: Visit) -> Visit:
        pass

    @abstractmethod
    def add_result(self, visit: Visit, test: Test, status: Optional[Status] = None) -> Result:
        pass

    @abstractmethod
    def get_result(self, result_id: int) -> Result:
        pass

    @abstractmethod
    def deliveries_for_result(self, result: Result) -> List[Delivery]:
        pass

    @abstractmethod
    def upsert_script(self, name: str, language: str, message: str) -> None:
        pass

    @abstractmethod
    def report_rows(self, start_date: date, end_date: date) -> List[ReportRow]:
        """
        レポート行を取得

        受診日が期間内の受診について、(受診, 結果, 配信) ごとに1行、
        配信がない結果は配信項目を None にした1行を返します。
        """
        pass


import sqlite3
import threading
from contextlib import contextmanager
from typing import Generator


class SQLiteRepository(Repository):
    """
    SQLite実装

    SQLiteデータベースを使用したリポジトリ実装です。
    接続は操作ごとに開き、transaction() の中ではスレッドごとに
    1つの接続を共有します。
    """

    def __init__(self, db_path: str = "results_ivr.db"):
        """
        SQLiteRepositoryを初期化

        Args:
            db_path: SQLiteデータベースファイルのパス
        """
        self.db_path = db_path
        self._local = threading.local()
        self._create_tables()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        データベース接続のコンテキストマネージャー

        トランザクション中であればその接続を返し、そうでなければ新しい
        接続を開いて正常終了時にコミットします。

        Raises:
            StorageError: データベース操作に失敗した場合
        """
        active = getattr(self._local, "conn", None)
        if active is not None:
            try:
                yield active
            except sqlite3.Error as e:
                raise StorageError(f"Database error: {e}") from e
            return

        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Database connection error: {e}") from e
        finally:
            if conn:
                conn.close()

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Database connection error: {e}") from e
        conn.row_factory = sqlite3.Row
        self._local.conn = conn
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("BEGIN IMMEDIATE")
            yield
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Transaction failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def _create_tables(self) -> None:
        """
        データベーステーブルを作成

        Raises:
            StorageError: テーブル作成に失敗した場合
        """
        statements = [
            """
            CREATE TABLE IF NOT EXISTS clinics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code VARCHAR(32) NOT NULL UNIQUE,
                name VARCHAR(255) NOT NULL UNIQUE,
                hours_in_english TEXT NOT NULL,
                hours_in_spanish TEXT NOT NULL,
                deleted_at TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS statuses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                status VARCHAR(255) NOT NULL UNIQUE COLLATE NOCASE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS tests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name VARCHAR(255) NOT NULL UNIQUE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS visits (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                patient_number VARCHAR(64) NOT NULL,
                clinic_id INTEGER NOT NULL REFERENCES clinics(id),
                username VARCHAR(64) NOT NULL,
                password VARCHAR(64) NOT NULL,
                visited_on DATE NOT NULL,
                UNIQUE (username, password)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                visit_id INTEGER NOT NULL REFERENCES visits(id),
                test_id INTEGER NOT NULL REFERENCES tests(id),
                status_id INTEGER REFERENCES statuses(id),
                delivery_status VARCHAR(20) NOT NULL DEFAULT 'not_yet_delivered'
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS deliveries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                delivered_at TIMESTAMP NOT NULL,
                delivery_method VARCHAR(20) NOT NULL,
                message TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS result_deliveries (
                result_id INTEGER NOT NULL REFERENCES results(id),
                delivery_id INTEGER NOT NULL REFERENCES deliveries(id),
                PRIMARY KEY (result_id, delivery_id)
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS scripts (
                name VARCHAR(255) NOT NULL,
                language VARCHAR(20) NOT NULL,
                message TEXT NOT NULL,
                PRIMARY KEY (name, language)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_visits_username ON visits(username)",
            "CREATE INDEX IF NOT EXISTS idx_visits_visited_on ON visits(visited_on)",
            "CREATE INDEX IF NOT EXISTS idx_results_visit_id ON results(visit_id)",
        ]

        with self._get_connection() as conn:
            cursor = conn.cursor()
            for statement in statements:
                cursor.execute(statement)

    # ----------------------------------------------------------------------
    # 通話フロー用クエリ
    # ----------------------------------------------------------------------

    def find_visit_by_username(self, username: str) -> Optional[Visit]:
        if not username:
            return None
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM visits WHERE username = ? ORDER BY id LIMIT 1",
                (username,)
            ).fetchone()
        return self._row_to_visit(row) if row else None

    def find_visit_by_credentials(self, username: str, password: str) -> Optional[Visit]:
        if not username or not password:
            return None
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM visits WHERE username = ? AND password = ?",
                (username, password)
            ).fetchone()
        return self._row_to_visit(row) if row else None

    def get_visit(self, visit_id: int) -> Visit:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM visits WHERE id = ?", (visit_id,)).fetchone()
        if row is None:
            raise RecordNotFoundError("Visit", visit_id)
        return self._row_to_visit(row)

    def get_visit_clinic(self, visit: Visit) -> Clinic:
        clinic = self.get_clinic(visit.clinic_id, include_deleted=True)
        if clinic is None:
            raise RecordNotFoundError("Clinic", visit.clinic_id)
        return clinic

    def latest_results_by_test(self, visit: Visit) -> List[Result]:
        sql = """
        SELECT results.*, tests.name AS test_name, statuses.status AS status_label
        FROM results
        JOIN tests ON tests.id = results.test_id
        LEFT JOIN statuses ON statuses.id = results.status_id
        WHERE results.visit_id = ?
        ORDER BY results.id
        """
        with self._get_connection() as conn:
            rows = conn.execute(sql, (visit.id,)).fetchall()

        # 後から追加された結果で上書きし、検査の出現順は維持する
        latest: Dict[int, Result] = {}
        for row in rows:
            latest[row["test_id"]] = self._row_to_result(row)
        return list(latest.values())

    def create_delivery(self, method: str, message: str, delivered_at: datetime) -> Delivery:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO deliveries (delivered_at, delivery_method, message)
                VALUES (?, ?, ?)
                """,
                (delivered_at.isoformat(), method, message)
            )
            delivery_id = cursor.lastrowid
        return Delivery(
            id=delivery_id,
            delivered_at=delivered_at,
            delivery_method=method,
            message=message
        )

    def attach_delivery(self, result: Result, delivery: Delivery) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO result_deliveries (result_id, delivery_id) VALUES (?, ?)",
                (result.id, delivery.id)
            )

    def update_delivery_status(self, result: Result, status: DeliveryStatus) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE results SET delivery_status = ? WHERE id = ?",
                (DeliveryStatus(status).value, result.id)
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError("Result", result.id)
        result.delivery_status = DeliveryStatus(status)

    def get_script(self, name: str, language: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT message FROM scripts WHERE name = ? AND language = ?",
                (name, language)
            ).fetchone()
        return row["message"] if row else None

    # ----------------------------------------------------------------------
    # クリニック
    # ----------------------------------------------------------------------

    def _validate_clinic(self, conn: sqlite3.Connection, clinic: Clinic) -> Dict[str, List[str]]:
        errors: Dict[str, List[str]] = {}
        for field_name in ("code", "name", "hours_in_english", "hours_in_spanish"):
            if not (getattr(clinic, field_name) or "").strip():
                errors.setdefault(field_name, []).append(BLANK)

        for field_name in ("code", "name"):
            value = getattr(clinic, field_name)
            if not value:
                continue
            row = conn.execute(
                f"SELECT id FROM clinics WHERE {field_name} = ? AND id IS NOT ?",
                (value, clinic.id)
            ).fetchone()
            if row is not None:
                errors.setdefault(field_name, []).append(TAKEN)
        return errors

    def create_clinic(self, clinic: Clinic) -> Clinic:
        with self._get_connection() as conn:
            errors = self._validate_clinic(conn, clinic)
            if errors:
                raise ValidationError("clinic", errors)
            cursor = conn.execute(
                """
                INSERT INTO clinics (code, name, hours_in_english, hours_in_spanish, deleted_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    clinic.code,
                    clinic.name,
                    clinic.hours_in_english,
                    clinic.hours_in_spanish,
                    clinic.deleted_at.isoformat() if clinic.deleted_at else None
                )
            )
            clinic.id = cursor.lastrowid
        return clinic

    def update_clinic(self, clinic: Clinic) -> Clinic:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM clinics WHERE id = ?", (clinic.id,)).fetchone()
            if row is None:
                raise RecordNotFoundError("Clinic", clinic.id)

            errors = self._validate_clinic(conn, clinic)
            if clinic.code != row["code"]:
                errors.setdefault("code", []).insert(0, CLINIC_CODE_IMMUTABLE)
            if errors:
                raise ValidationError("clinic", errors)

            conn.execute(
                """
                UPDATE clinics
                SET name = ?, hours_in_english = ?, hours_in_spanish = ?
                WHERE id = ?
                """,
                (clinic.name, clinic.hours_in_english, clinic.hours_in_spanish, clinic.id)
            )
        return clinic

    def get_clinic(self, clinic_id: int, include_deleted: bool = False) -> Optional[Clinic]:
        sql = "SELECT * FROM clinics WHERE id = ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        with self._get_connection() as conn:
            row = conn.execute(sql, (clinic_id,)).fetchone()
        return self._row_to_clinic(row) if row else None

    def list_clinics(self, include_deleted: bool = False) -> List[Clinic]:
        sql = "SELECT * FROM clinics"
        if not include_deleted:
            sql += " WHERE deleted_at IS NULL"
        sql += " ORDER BY name"
        with self._get_connection() as conn:
            rows = conn.execute(sql).fetchall()
        return [self._row_to_clinic(row) for row in rows]

    def delete_clinic(self, clinic: Clinic) -> Clinic:
        deleted_at = datetime.now()
        self._set_clinic_deleted_at(clinic, deleted_at)
        clinic.deleted_at = deleted_at
        return clinic

    def restore_clinic(self, clinic: Clinic) -> Clinic:
        self._set_clinic_deleted_at(clinic, None)
        clinic.deleted_at = None
        return clinic

    def _set_clinic_deleted_at(self, clinic: Clinic, deleted_at: Optional[datetime]) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE clinics SET deleted_at = ? WHERE id = ?",
                (deleted_at.isoformat() if deleted_at else None, clinic.id)
            )
            if cursor.rowcount == 0:
                raise RecordNotFoundError("Clinic", clinic.id)

    # ----------------------------------------------------------------------
    # ステータス・検査・受診・結果
    # ----------------------------------------------------------------------

    def create_status(self, label: str) -> Status:
        if not (label or "").strip():
            raise ValidationError("status", {"status": [BLANK]})
        with self._get_connection() as conn:
            # COLLATE NOCASE により大文字小文字を区別せず比較される
            row = conn.execute("SELECT id FROM statuses WHERE status = ?", (label,)).fetchone()
            if row is not None:
                raise ValidationError("status", {"status": [TAKEN]})
            cursor = conn.execute("INSERT INTO statuses (status) VALUES (?)", (label,))
            return Status(id=cursor.lastrowid, status=label)

    def create_test(self, name: str) -> Test:
        if not (name or "").strip():
            raise ValidationError("test", {"name": [BLANK]})
        with self._get_connection() as conn:
            row = conn.execute("SELECT id FROM tests WHERE name = ?", (name,)).fetchone()
            if row is not None:
                raise ValidationError("test", {"name": [TAKEN]})
            cursor = conn.execute("INSERT INTO tests (name) VALUES (?)", (name,))
            return Test(id=cursor.lastrowid, name=name)

    def create_visit(self, visit: Visit) -> Visit:
        errors: Dict[str, List[str]] = {}
        for field_name in ("patient_number", "clinic_id", "username", "password", "visited_on"):
            value = getattr(visit, field_name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.setdefault(field_name, []).append(BLANK)

        with self._get_connection() as conn:
            if visit.clinic_id is not None:
                # 論理削除されたクリニックにも受診を登録できる
                clinic = conn.execute(
                    "SELECT id FROM clinics WHERE id = ?", (visit.clinic_id,)
                ).fetchone()
                if clinic is None:
                    errors.setdefault("clinic_id", []).append(BLANK)
            if visit.username and visit.password:
                row = conn.execute(
                    "SELECT id FROM visits WHERE username = ? AND password = ?",
                    (visit.username, visit.password)
                ).fetchone()
                if row is not None:
                    errors.setdefault("username", []).append(TAKEN)
            if errors:
                raise ValidationError("visit", errors)

            cursor = conn.execute(
                """
                INSERT INTO visits (patient_number, clinic_id, username, password, visited_on)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    visit.patient_number,
                    visit.clinic_id,
                    visit.username,
                    visit.password,
                    visit.visited_on.isoformat()
                )
            )
            visit.id = cursor.lastrowid
        return visit

    def add_result(self, visit: Visit, test: Test, status: Optional[Status] = None) -> Result:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO results (visit_id, test_id, status_id, delivery_status) VALUES (?, ?, ?, ?)",
                (
                    visit.id,
                    test.id,
                    status.id if status else None,
                    DeliveryStatus.NOT_YET_DELIVERED.value
                )
            )
            result_id = cursor.lastrowid
        return Result(
            id=result_id,
            visit_id=visit.id,
            test_id=test.id,
            status_id=status.id if status else None,
            test_name=test.name,
            status=status.status if status else None
        )

    def get_result(self, result_id: int) -> Result:
        sql = """
        SELECT results.*, tests.name AS test_name, statuses.status AS status_label
        FROM results
        JOIN tests ON tests.id = results.test_id
        LEFT JOIN statuses ON statuses.id = results.status_id
        WHERE results.id = ?
        """
        with self._get_connection() as conn:
            row = conn.execute(sql, (result_id,)).fetchone()
        if row is None:
            raise RecordNotFoundError("Result", result_id)
        return self._row_to_result(row)

    def deliveries_for_result(self, result: Result) -> List[Delivery]:
        sql = """
        SELECT deliveries.*
        FROM deliveries
        JOIN result_deliveries ON result_deliveries.delivery_id = deliveries.id
        WHERE result_deliveries.result_id = ?
        ORDER BY deliveries.id
        """
        with self._get_connection() as conn:
            rows = conn.execute(sql, (result.id,)).fetchall()
        return [self._row_to_delivery(row) for row in rows]

    def upsert_script(self, name: str, language: str, message: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO scripts (name, language, message) VALUES (?, ?, ?)",
                (name, language, message)
            )

    def report_rows(self, start_date: date, end_date: date) -> List[ReportRow]:
        sql = """
        SELECT visits.patient_number, visits.username, visits.password, visits.visited_on,
               clinics.code AS clinic_code, tests.name AS test_name,
               statuses.status AS status_label, results.delivery_status,
               deliveries.delivery_method, deliveries.delivered_at, deliveries.message
        FROM visits
        JOIN clinics ON clinics.id = visits.clinic_id
        JOIN results ON results.visit_id = visits.id
        JOIN tests ON tests.id = results.test_id
        LEFT JOIN statuses ON statuses.id = results.status_id
        LEFT JOIN result_deliveries ON result_deliveries.result_id = results.id
        LEFT JOIN deliveries ON deliveries.id = result_deliveries.delivery_id
        WHERE visits.visited_on BETWEEN ? AND ?
        ORDER BY visits.id, results.id, deliveries.id
        """
        with self._get_connection() as conn:
            rows = conn.execute(sql, (start_date.isoformat(), end_date.isoformat())).fetchall()

        return [
            ReportRow(
                patient_no=row["patient_number"],
                username=row["username"],
                password=row["password"],
                visit_date=date.fromisoformat(row["visited_on"]),
                cosite=row["clinic_code"],
                infection=row["test_name"],
                result_at_time=row["status_label"],
                delivery_status=row["delivery_status"],
                accessed_by=row["delivery_method"],
                date_accessed=(
                    datetime.fromisoformat(row["delivered_at"]) if row["delivered_at"] else None
                ),
                message=row["message"]
            )
            for row in rows
        ]

    # ----------------------------------------------------------------------
    # 行変換
    # ----------------------------------------------------------------------

    def _row_to_clinic(self, row: sqlite3.Row) -> Clinic:
        return Clinic(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            hours_in_english=row["hours_in_english"],
            hours_in_spanish=row["hours_in_spanish"],
            deleted_at=datetime.fromisoformat(row["deleted_at"]) if row["deleted_at"] else None
        )

    def _row_to_visit(self, row: sqlite3.Row) -> Visit:
        return Visit(
            id=row["id"],
            patient_number=row["patient_number"],
            clinic_id=row["clinic_id"],
            username=row["username"],
            password=row["password"],
            visited_on=date.fromisoformat(row["visited_on"])
        )

    def _row_to_result(self, row: sqlite3.Row) -> Result:
        return Result(
            id=row["id"],
            visit_id=row["visit_id"],
            test_id=row["test_id"],
            status_id=row["status_id"],
            delivery_status=DeliveryStatus(row["delivery_status"]),
            test_name=row["test_name"],
            status=row["status_label"]
        )

    def _row_to_delivery(self, row: sqlite3.Row) -> Delivery:
        return Delivery(
            id=row["id"],
            delivered_at=datetime.fromisoformat(row["delivered_at"]),
            delivery_method=row["delivery_method"],
            message=row["message"]
        )
