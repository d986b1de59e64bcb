"""
公開トークンを持つアイデアフレームワーク（マンダラート・オズボーン）共通のデータアクセス
"""
from idealab.db import fetch_returning, get_connection, now_str, row_to_dict, using_supabase
from idealab.tokens import generate_token

FRAMEWORK_COLUMNS = (
    'id', 'user_id', 'title', 'theme_name', 'description',
    'public_token', 'is_results_public', 'created_at', 'updated_at',
)

_TABLES = ('mandalarts', 'osborn_checklists')


def _check_table(table: str) -> str:
    if table not in _TABLES:
        raise ValueError(f'未対応のテーブルです: {table}')
    return table


def to_framework(row):
    return row_to_dict(FRAMEWORK_COLUMNS, row, bool_fields=('is_results_public',))


def list_by_user_id(table: str, user_id: str):
    with get_connection() as con:
        rows = con.execute(
            f"SELECT {', '.join(FRAMEWORK_COLUMNS)} FROM {_check_table(table)} WHERE user_id = ? ORDER BY id DESC",
            (user_id,)
        ).fetchall()
    return [to_framework(row) for row in rows]


def create(table: str, user_id: str, title: str, theme_name: str, description: str | None):
    now = now_str()
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"INSERT INTO {_check_table(table)} "
            "(user_id, title, theme_name, description, public_token, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?, ?, ?) RETURNING {', '.join(FRAMEWORK_COLUMNS)}",
            (user_id, title, theme_name, description, generate_token(), now, now)
        ))
        if not using_supabase():
            con.commit()
    return to_framework(row)


def update(table: str, record_id: int, user_id: str, title: str, theme_name: str, description: str | None):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"UPDATE {_check_table(table)} SET title = ?, theme_name = ?, description = ?, updated_at = ? "
            f"WHERE id = ? AND user_id = ? RETURNING {', '.join(FRAMEWORK_COLUMNS)}",
            (title, theme_name, description, now_str(), record_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return to_framework(row)


def delete(table: str, record_id: int, user_id: str):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"DELETE FROM {_check_table(table)} WHERE id = ? AND user_id = ? "
            f"RETURNING {', '.join(FRAMEWORK_COLUMNS)}",
            (record_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return to_framework(row)


def get_by_id(table: str, record_id: int, user_id: str):
    with get_connection() as con:
        row = con.execute(
            f"SELECT {', '.join(FRAMEWORK_COLUMNS)} FROM {_check_table(table)} WHERE id = ? AND user_id = ?",
            (record_id, user_id)
        ).fetchone()
    return to_framework(row)


def get_public_by_token(table: str, token: str):
    """結果が公開されている場合のみ返す"""
    with get_connection() as con:
        row = con.execute(
            f"SELECT {', '.join(FRAMEWORK_COLUMNS)} FROM {_check_table(table)} WHERE public_token = ?",
            (token,)
        ).fetchone()
    record = to_framework(row)
    if not record or not record['is_results_public']:
        return None
    return record


def update_is_results_public(table: str, record_id: int, user_id: str, is_results_public: bool):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"UPDATE {_check_table(table)} SET is_results_public = ?, updated_at = ? "
            f"WHERE id = ? AND user_id = ? RETURNING {', '.join(FRAMEWORK_COLUMNS)}",
            (is_results_public, now_str(), record_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return to_framework(row)
