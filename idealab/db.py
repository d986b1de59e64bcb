import os
import uuid
from datetime import datetime
from zoneinfo import ZoneInfo

USE_SUPABASE = bool(
    os.environ.get('SUPABASE_DATABASE_URL')
    or os.environ.get('DATABASE_URL')
    or os.environ.get('SUPABASE_HOST')
)

if USE_SUPABASE:
    import psycopg  # type: ignore
else:
    import sqlite3  # type: ignore

_DEFAULT_DB_PATH = os.path.abspath(
    os.path.join(os.path.dirname(__file__), '..', 'database.db')
)
DATABASE = os.environ.get('DB_PATH', _DEFAULT_DB_PATH)

_SUPABASE_SETTINGS: dict[str, str | int] = {}

if USE_SUPABASE:
    conninfo = os.environ.get('SUPABASE_DATABASE_URL') or os.environ.get('DATABASE_URL')
    if conninfo:
        _SUPABASE_SETTINGS['conninfo'] = conninfo
    else:
        host = os.environ.get('SUPABASE_HOST')
        user = os.environ.get('SUPABASE_USER')
        password = os.environ.get('SUPABASE_PASSWORD')
        dbname = os.environ.get('SUPABASE_DB') or os.environ.get('SUPABASE_DATABASE')
        if host and user and password and dbname:
            _SUPABASE_SETTINGS = {
                'host': host,
                'port': int(os.environ.get('SUPABASE_PORT', 5432)),
                'user': user,
                'password': password,
                'dbname': dbname,
            }

# 日本時間（JST）
JST = ZoneInfo('Asia/Tokyo')

DEFAULT_CATEGORY_NAME = 'その他'


def using_supabase() -> bool:
    return USE_SUPABASE and bool(_SUPABASE_SETTINGS)


def _prepare_query(query: str) -> str:
    if using_supabase():
        return query.replace('?', '%s')
    return query


class SupabaseCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, query, params=()):
        self._cursor.execute(_prepare_query(query), params)
        return self

    def fetchone(self):
        return self._cursor.fetchone()

    def fetchall(self):
        return self._cursor.fetchall()

    @property
    def rowcount(self):
        return self._cursor.rowcount

    def close(self):
        self._cursor.close()


class SupabaseConnection:
    def __init__(self):
        if not using_supabase():
            raise RuntimeError('Supabase connection settings are not configured.')
        self._conn = psycopg.connect(**_SUPABASE_SETTINGS)  # type: ignore[arg-type]
        self._conn.autocommit = False

    def execute(self, query, params=()):
        cursor = self._conn.cursor()
        return SupabaseCursor(cursor).execute(query, params)

    def cursor(self):
        return SupabaseCursor(self._conn.cursor())

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc:
            self.rollback()
        else:
            self.commit()
        self.close()
        return False


def get_connection():
    if using_supabase():
        return SupabaseConnection()
    con = sqlite3.connect(DATABASE)  # type: ignore[name-defined]
    # 親レコード削除時の ON DELETE CASCADE を有効にする
    con.execute('PRAGMA foreign_keys = ON')
    return con


def now_jst():
    """現在時刻を日本時間（JST）で返す（タイムゾーン情報なし）"""
    return datetime.now(JST).replace(tzinfo=None)


def now_str() -> str:
    return now_jst().strftime('%Y-%m-%d %H:%M:%S')


def _parse_datetime(date_value):
    """データベースから取得した日時をdatetimeオブジェクトに変換"""
    if isinstance(date_value, datetime):
        return date_value.replace(tzinfo=None) if date_value.tzinfo else date_value
    if isinstance(date_value, str):
        for fmt in ['%Y-%m-%d %H:%M:%S', '%Y-%m-%d %H:%M:%S.%f', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%S.%f']:
            try:
                return datetime.strptime(date_value, fmt)
            except ValueError:
                continue
        return None
    return date_value


def format_datetime(date_value):
    """JSONレスポンス用に日時をISO形式の文字列へ変換"""
    parsed = _parse_datetime(date_value)
    if isinstance(parsed, datetime):
        return parsed.isoformat()
    return date_value


def row_to_dict(columns, row, datetime_fields=('created_at', 'updated_at'), bool_fields=()):
    if row is None:
        return None
    data = dict(zip(columns, row))
    for field in datetime_fields:
        if field in data:
            data[field] = format_datetime(data[field])
    for field in bool_fields:
        if field in data and data[field] is not None:
            data[field] = bool(data[field])
    return data


def rows_to_dicts(columns, rows, **kwargs):
    return [row_to_dict(columns, row, **kwargs) for row in rows]


def fetch_returning(cursor):
    """INSERT/UPDATE/DELETE ... RETURNING の結果を1行返す（文を最後まで進める）"""
    rows = cursor.fetchall()
    return rows[0] if rows else None


def create_table():
    if using_supabase():
        id_column = 'SERIAL PRIMARY KEY'
        bool_true = 'BOOLEAN NOT NULL DEFAULT TRUE'
        bool_false = 'BOOLEAN NOT NULL DEFAULT FALSE'
    else:
        id_column = 'INTEGER PRIMARY KEY AUTOINCREMENT'
        bool_true = 'INTEGER NOT NULL DEFAULT 1'
        bool_false = 'INTEGER NOT NULL DEFAULT 0'

    with get_connection() as con:
        con.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id           VARCHAR(64) PRIMARY KEY,
                name         VARCHAR(100) NOT NULL,
                email        VARCHAR(255) UNIQUE NOT NULL,
                password     TEXT NOT NULL,
                image        TEXT,
                created_at   TIMESTAMP NOT NULL,
                updated_at   TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS brainwritings (
                id                 {id_column},
                user_id            VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                usage_scope        VARCHAR(10) NOT NULL,
                title              VARCHAR(200) NOT NULL,
                theme_name         VARCHAR(100) NOT NULL,
                description        VARCHAR(1000),
                invite_token       VARCHAR(64) UNIQUE NOT NULL,
                is_invite_active   {bool_true},
                is_results_public  {bool_false},
                created_at         TIMESTAMP NOT NULL,
                updated_at         TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS brainwriting_users (
                id               {id_column},
                brainwriting_id  INTEGER NOT NULL REFERENCES brainwritings(id) ON DELETE CASCADE,
                user_id          VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at       TIMESTAMP NOT NULL,
                updated_at       TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS brainwriting_sheets (
                id               {id_column},
                brainwriting_id  INTEGER NOT NULL REFERENCES brainwritings(id) ON DELETE CASCADE,
                current_user_id  VARCHAR(64) REFERENCES users(id) ON DELETE SET NULL,
                lock_expires_at  TIMESTAMP,
                created_at       TIMESTAMP NOT NULL,
                updated_at       TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS brainwriting_inputs (
                id                     {id_column},
                brainwriting_id        INTEGER NOT NULL REFERENCES brainwritings(id) ON DELETE CASCADE,
                brainwriting_sheet_id  INTEGER NOT NULL REFERENCES brainwriting_sheets(id) ON DELETE CASCADE,
                input_user_id          VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                row_index              INTEGER NOT NULL,
                column_index           INTEGER NOT NULL,
                content                VARCHAR(100),
                created_at             TIMESTAMP NOT NULL,
                updated_at             TIMESTAMP NOT NULL
            )
        """)

        for table in ('mandalarts', 'osborn_checklists'):
            con.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id                 {id_column},
                    user_id            VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title              VARCHAR(200) NOT NULL,
                    theme_name         VARCHAR(100) NOT NULL,
                    description        VARCHAR(1000),
                    public_token       VARCHAR(64) UNIQUE NOT NULL,
                    is_results_public  {bool_false},
                    created_at         TIMESTAMP NOT NULL,
                    updated_at         TIMESTAMP NOT NULL
                )
            """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS mandalart_inputs (
                id                    {id_column},
                mandalart_id          INTEGER NOT NULL REFERENCES mandalarts(id) ON DELETE CASCADE,
                section_row_index     INTEGER NOT NULL,
                section_column_index  INTEGER NOT NULL,
                row_index             INTEGER NOT NULL,
                column_index          INTEGER NOT NULL,
                content               VARCHAR(100),
                created_at            TIMESTAMP NOT NULL,
                updated_at            TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS osborn_checklist_inputs (
                id                   {id_column},
                osborn_checklist_id  INTEGER NOT NULL REFERENCES osborn_checklists(id) ON DELETE CASCADE,
                checklist_type       VARCHAR(50) NOT NULL,
                content              VARCHAR(1000),
                created_at           TIMESTAMP NOT NULL,
                updated_at           TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS ai_generations (
                id                 {id_column},
                target_type        VARCHAR(50) NOT NULL,
                target_id          INTEGER NOT NULL,
                generation_status  VARCHAR(20) NOT NULL DEFAULT 'pending',
                generation_result  TEXT,
                error_message      TEXT,
                created_at         TIMESTAMP NOT NULL,
                updated_at         TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS idea_categories (
                id           {id_column},
                user_id      VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                name         VARCHAR(200) NOT NULL,
                description  TEXT,
                created_at   TIMESTAMP NOT NULL,
                updated_at   TIMESTAMP NOT NULL
            )
        """)

        con.execute(f"""
            CREATE TABLE IF NOT EXISTS ideas (
                id                {id_column},
                idea_category_id  INTEGER NOT NULL REFERENCES idea_categories(id) ON DELETE CASCADE,
                name              VARCHAR(200) NOT NULL,
                description       TEXT,
                priority          VARCHAR(10) NOT NULL DEFAULT 'medium',
                created_at        TIMESTAMP NOT NULL,
                updated_at        TIMESTAMP NOT NULL
            )
        """)

        con.execute(
            "CREATE INDEX IF NOT EXISTS idx_brainwriting_inputs_sheet ON brainwriting_inputs (brainwriting_sheet_id)"
        )
        con.execute(
            "CREATE INDEX IF NOT EXISTS idx_mandalart_inputs_mandalart ON mandalart_inputs (mandalart_id)"
        )
        con.execute(
            "CREATE INDEX IF NOT EXISTS idx_ai_generations_target ON ai_generations (target_type, target_id)"
        )

        if not using_supabase():
            con.commit()


# ==================== ユーザー関連の関数 ====================

USER_COLUMNS = ('id', 'name', 'email', 'image', 'created_at', 'updated_at')


def get_user_by_email(email: str):
    """ログイン用にパスワードハッシュを含むタプルを返す"""
    with get_connection() as con:
        row = con.execute(
            "SELECT id, name, email, password, image FROM users WHERE email = ?",
            (email,)
        ).fetchone()
    return row


def get_user_by_id(user_id: str):
    with get_connection() as con:
        row = con.execute(
            "SELECT id, name, email, image, created_at, updated_at FROM users WHERE id = ?",
            (user_id,)
        ).fetchone()
    return row_to_dict(USER_COLUMNS, row)


def insert_user(name: str, email: str, password_hash: str, image: str | None = None) -> str:
    """ユーザーを登録し、既定のカテゴリ「その他」を作成する"""
    user_id = uuid.uuid4().hex
    now = now_str()
    with get_connection() as con:
        con.execute(
            "INSERT INTO users (id, name, email, password, image, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (user_id, name, email, password_hash, image, now, now)
        )
        con.execute(
            "INSERT INTO idea_categories (user_id, name, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (user_id, DEFAULT_CATEGORY_NAME, None, now, now)
        )
        if not using_supabase():
            con.commit()
    return user_id


def update_user(user_id: str, name: str):
    with get_connection() as con:
        con.execute(
            "UPDATE users SET name = ?, updated_at = ? WHERE id = ?",
            (name, now_str(), user_id)
        )
        if not using_supabase():
            con.commit()
    return get_user_by_id(user_id)


def update_user_image(user_id: str, image: str | None) -> None:
    with get_connection() as con:
        con.execute(
            "UPDATE users SET image = ?, updated_at = ? WHERE id = ?",
            (image, now_str(), user_id)
        )
        if not using_supabase():
            con.commit()
