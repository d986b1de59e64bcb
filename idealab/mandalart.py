"""
マンダラートのデータアクセス

9x9 のグリッドを 3x3 のセクション×3x3 のセルで表す。
中央セクション (1,1) の中央セル (1,1) がテーマ、その周囲8セルがサブテーマ。
"""
from idealab import idea_framework
from idealab.db import fetch_returning, get_connection, now_str, row_to_dict, using_supabase
from idealab.tokens import generate_mandalart_public_url

TABLE = 'mandalarts'

GRID_SIZE = 3

INPUT_COLUMNS = (
    'id', 'mandalart_id', 'section_row_index', 'section_column_index',
    'row_index', 'column_index', 'content', 'created_at', 'updated_at',
)

# 中央セクションの周囲8セル（サブテーマの位置）
SUB_THEME_POSITIONS = [
    (0, 0), (0, 1), (0, 2),
    (1, 0),         (1, 2),
    (2, 0), (2, 1), (2, 2),
]

# 各セクションの周囲8セル（アイデアの位置）
SURROUNDING_CELLS = SUB_THEME_POSITIONS

# セクション位置とサブテーマ番号の対応
SECTION_MAPPING = [
    ((0, 0), 0),
    ((0, 1), 1),
    ((0, 2), 2),
    ((1, 0), 3),
    ((1, 2), 4),
    ((2, 0), 5),
    ((2, 1), 6),
    ((2, 2), 7),
]


def input_key(section_row: int, section_column: int, row: int, column: int) -> str:
    return f'{section_row}-{section_column}-{row}-{column}'


def _with_public_url(mandalart):
    if mandalart:
        mandalart['publicUrl'] = generate_mandalart_public_url(mandalart['public_token'])
    return mandalart


def get_mandalarts_by_user_id(user_id: str):
    return idea_framework.list_by_user_id(TABLE, user_id)


def create_mandalart(user_id: str, title: str, theme_name: str, description: str | None):
    return _with_public_url(idea_framework.create(TABLE, user_id, title, theme_name, description))


def update_mandalart(mandalart_id: int, user_id: str, title: str, theme_name: str, description: str | None):
    return idea_framework.update(TABLE, mandalart_id, user_id, title, theme_name, description)


def delete_mandalart(mandalart_id: int, user_id: str):
    return idea_framework.delete(TABLE, mandalart_id, user_id)


def get_mandalart_by_id(mandalart_id: int, user_id: str):
    return idea_framework.get_by_id(TABLE, mandalart_id, user_id)


def update_mandalart_is_results_public(mandalart_id: int, user_id: str, is_results_public: bool):
    return idea_framework.update_is_results_public(TABLE, mandalart_id, user_id, is_results_public)


def get_mandalart_inputs(mandalart_id: int):
    with get_connection() as con:
        rows = con.execute(
            f"SELECT {', '.join(INPUT_COLUMNS)} FROM mandalart_inputs WHERE mandalart_id = ? "
            "ORDER BY section_row_index, section_column_index, row_index, column_index",
            (mandalart_id,)
        ).fetchall()
    return [row_to_dict(INPUT_COLUMNS, row) for row in rows]


def get_mandalart_detail_by_id(mandalart_id: int, user_id: str):
    mandalart = get_mandalart_by_id(mandalart_id, user_id)
    if not mandalart:
        return None
    return {**_with_public_url(mandalart), 'inputs': get_mandalart_inputs(mandalart_id)}


def get_mandalart_detail_by_token(token: str):
    """公開中のマンダラートのみ返す"""
    mandalart = idea_framework.get_public_by_token(TABLE, token)
    if not mandalart:
        return None
    return {**mandalart, 'inputs': get_mandalart_inputs(mandalart['id'])}


def save_mandalart_cell(con, mandalart_id: int, section_row: int, section_column: int,
                        row: int, column: int, content: str | None, now: str):
    """既存セルは更新、なければ作成して RETURNING 行を返す"""
    existing = con.execute(
        "SELECT id FROM mandalart_inputs WHERE mandalart_id = ? AND section_row_index = ? "
        "AND section_column_index = ? AND row_index = ? AND column_index = ?",
        (mandalart_id, section_row, section_column, row, column)
    ).fetchone()
    if existing:
        return fetch_returning(con.execute(
            f"UPDATE mandalart_inputs SET content = ?, updated_at = ? WHERE id = ? RETURNING {', '.join(INPUT_COLUMNS)}",
            (content, now, existing[0])
        ))
    return fetch_returning(con.execute(
        "INSERT INTO mandalart_inputs "
        "(mandalart_id, section_row_index, section_column_index, row_index, column_index, content, created_at, updated_at) "
        f"VALUES (?, ?, ?, ?, ?, ?, ?, ?) RETURNING {', '.join(INPUT_COLUMNS)}",
        (mandalart_id, section_row, section_column, row, column, content, now, now)
    ))


def upsert_mandalart_input(mandalart_id: int, user_id: str, section_row: int, section_column: int,
                           row: int, column: int, content: str | None):
    """所有者でなければ None を返す。空文字は NULL として保存"""
    if not get_mandalart_by_id(mandalart_id, user_id):
        return None
    with get_connection() as con:
        saved = save_mandalart_cell(
            con, mandalart_id, section_row, section_column, row, column, content or None, now_str()
        )
        if not using_supabase():
            con.commit()
    return row_to_dict(INPUT_COLUMNS, saved)
