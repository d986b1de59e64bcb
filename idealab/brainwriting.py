"""
ブレインライティングのデータアクセス

シートのロックとローテーションは brainwriting_sheets の current_user_id と
lock_expires_at の更新だけで表現する。
"""
import logging
import os
from datetime import timedelta

from idealab.db import (
    _parse_datetime,
    fetch_returning,
    get_connection,
    now_jst,
    now_str,
    row_to_dict,
    rows_to_dicts,
    using_supabase,
)
from idealab.tokens import generate_invite_url, generate_token

logger = logging.getLogger(__name__)

USAGE_SCOPE = {
    'XPOST': 'xpost',
    'TEAM': 'team',
}

USAGE_SCOPE_LABELS = {
    'xpost': 'X投稿',
    'team': 'チーム利用',
}

MAX_USERS = 6
IDEAS_PER_ROW = 3

LOCK_DURATION_MINUTES = int(os.environ.get('BRAINWRITING_LOCK_DURATION_MINUTES', 10))

BRAINWRITING_COLUMNS = (
    'id', 'user_id', 'usage_scope', 'title', 'theme_name', 'description',
    'invite_token', 'is_invite_active', 'is_results_public', 'created_at', 'updated_at',
)
SHEET_COLUMNS = ('id', 'brainwriting_id', 'current_user_id', 'lock_expires_at', 'created_at', 'updated_at')
INPUT_COLUMNS = (
    'id', 'brainwriting_id', 'brainwriting_sheet_id', 'input_user_id', 'input_user_name',
    'row_index', 'column_index', 'content', 'created_at', 'updated_at',
)
USER_COLUMNS = ('id', 'brainwriting_id', 'user_id', 'user_name', 'created_at', 'updated_at')

_BOOL_FIELDS = ('is_invite_active', 'is_results_public')
_SHEET_DATETIME_FIELDS = ('lock_expires_at', 'created_at', 'updated_at')

_BRAINWRITING_SELECT = f"SELECT {', '.join(BRAINWRITING_COLUMNS)} FROM brainwritings"
_SHEET_SELECT = f"SELECT {', '.join(SHEET_COLUMNS)} FROM brainwriting_sheets"
_INPUT_SELECT = """
    SELECT bi.id, bi.brainwriting_id, bi.brainwriting_sheet_id, bi.input_user_id, u.name,
           bi.row_index, bi.column_index, bi.content, bi.created_at, bi.updated_at
    FROM brainwriting_inputs bi
    LEFT JOIN users u ON bi.input_user_id = u.id
"""
_INPUT_RETURNING = (
    "id, brainwriting_id, brainwriting_sheet_id, input_user_id, NULL, "
    "row_index, column_index, content, created_at, updated_at"
)


class BrainwritingError(Exception):
    """参加やシート操作のルール違反"""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def get_usage_scope_label(usage_scope: str) -> str:
    return USAGE_SCOPE_LABELS.get(usage_scope, usage_scope)


def _to_brainwriting(row):
    return row_to_dict(BRAINWRITING_COLUMNS, row, bool_fields=_BOOL_FIELDS)


def _to_sheet(row):
    return row_to_dict(SHEET_COLUMNS, row, datetime_fields=_SHEET_DATETIME_FIELDS)


def _to_input(row):
    return row_to_dict(INPUT_COLUMNS, row)


def _normalize_content(content):
    if content is None or content.strip() == '':
        return None
    return content


def _is_locked_by_other(current_user_id, lock_expires_at, user_id) -> bool:
    if not current_user_id or current_user_id == user_id:
        return False
    expires_at = _parse_datetime(lock_expires_at)
    return expires_at is not None and expires_at > now_jst()


def _insert_sheet_with_inputs(con, brainwriting_id: int, user_id: str, now: str) -> int:
    """シートを作成し、user_id を担当者として1行目の空入力を作る"""
    sheet_row = fetch_returning(con.execute(
        "INSERT INTO brainwriting_sheets (brainwriting_id, current_user_id, lock_expires_at, created_at, updated_at) "
        "VALUES (?, ?, NULL, ?, ?) RETURNING id",
        (brainwriting_id, user_id, now, now)
    ))
    sheet_id = sheet_row[0]
    _insert_empty_row(con, brainwriting_id, sheet_id, user_id, 0, now)
    return sheet_id


def _insert_empty_row(con, brainwriting_id: int, sheet_id: int, user_id: str, row_index: int, now: str) -> None:
    for column_index in range(IDEAS_PER_ROW):
        con.execute(
            "INSERT INTO brainwriting_inputs "
            "(brainwriting_id, brainwriting_sheet_id, input_user_id, row_index, column_index, content, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, NULL, ?, ?)",
            (brainwriting_id, sheet_id, user_id, row_index, column_index, now, now)
        )


# ==================== 一覧・作成・更新・削除 ====================

def get_brainwritings_by_user_id(user_id: str):
    with get_connection() as con:
        rows = con.execute(
            f"{_BRAINWRITING_SELECT} WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,)
        ).fetchall()
    return [_to_brainwriting(row) for row in rows]


def create_brainwriting(user_id: str, title: str, theme_name: str, description: str | None, usage_scope: str):
    """作成者を参加者に登録し、X投稿ならシートも同じトランザクションで作成する"""
    token = generate_token()
    now = now_str()
    with get_connection() as con:
        row = fetch_returning(con.execute(
            "INSERT INTO brainwritings "
            "(user_id, usage_scope, title, theme_name, description, invite_token, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?, ?, ?, ?) RETURNING {', '.join(BRAINWRITING_COLUMNS)}",
            (user_id, usage_scope, title, theme_name, description, token, now, now)
        ))
        brainwriting_id = row[0]
        con.execute(
            "INSERT INTO brainwriting_users (brainwriting_id, user_id, created_at, updated_at) VALUES (?, ?, ?, ?)",
            (brainwriting_id, user_id, now, now)
        )
        if usage_scope == USAGE_SCOPE['XPOST']:
            _insert_sheet_with_inputs(con, brainwriting_id, user_id, now)
        if not using_supabase():
            con.commit()

    brainwriting = _to_brainwriting(row)
    brainwriting['inviteUrl'] = generate_invite_url(token)
    return brainwriting


def update_brainwriting(brainwriting_id: int, user_id: str, title: str, theme_name: str,
                        description: str | None, usage_scope: str):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            "UPDATE brainwritings SET title = ?, theme_name = ?, description = ?, usage_scope = ?, updated_at = ? "
            f"WHERE id = ? AND user_id = ? RETURNING {', '.join(BRAINWRITING_COLUMNS)}",
            (title, theme_name, description, usage_scope, now_str(), brainwriting_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return _to_brainwriting(row)


def delete_brainwriting(brainwriting_id: int, user_id: str):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"DELETE FROM brainwritings WHERE id = ? AND user_id = ? RETURNING {', '.join(BRAINWRITING_COLUMNS)}",
            (brainwriting_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return _to_brainwriting(row)


def get_brainwriting_by_id_internal(brainwriting_id: int):
    """所有者チェックなしで取得（参加者向けの処理用）"""
    with get_connection() as con:
        row = con.execute(f"{_BRAINWRITING_SELECT} WHERE id = ?", (brainwriting_id,)).fetchone()
    return _to_brainwriting(row)


def get_brainwriting_by_id(brainwriting_id: int, user_id: str):
    with get_connection() as con:
        row = con.execute(
            f"{_BRAINWRITING_SELECT} WHERE id = ? AND user_id = ?",
            (brainwriting_id, user_id)
        ).fetchone()
    return _to_brainwriting(row)


def get_brainwriting_by_token(token: str):
    with get_connection() as con:
        row = con.execute(f"{_BRAINWRITING_SELECT} WHERE invite_token = ?", (token,)).fetchone()
    return _to_brainwriting(row)


def _update_flag(brainwriting_id: int, user_id: str, column: str, value: bool):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"UPDATE brainwritings SET {column} = ?, updated_at = ? "
            f"WHERE id = ? AND user_id = ? RETURNING {', '.join(BRAINWRITING_COLUMNS)}",
            (value, now_str(), brainwriting_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return _to_brainwriting(row)


def update_brainwriting_is_invite_active(brainwriting_id: int, user_id: str, is_invite_active: bool):
    return _update_flag(brainwriting_id, user_id, 'is_invite_active', is_invite_active)


def update_brainwriting_is_results_public(brainwriting_id: int, user_id: str, is_results_public: bool):
    return _update_flag(brainwriting_id, user_id, 'is_results_public', is_results_public)


# ==================== 入力・シート・参加者 ====================

def upsert_brainwriting_input(brainwriting_id: int, sheet_id: int, input_user_id: str,
                              row_index: int, column_index: int, content: str | None):
    """空白のみの入力は NULL として保存する"""
    normalized = _normalize_content(content)
    now = now_str()
    with get_connection() as con:
        existing = con.execute(
            "SELECT id FROM brainwriting_inputs "
            "WHERE brainwriting_id = ? AND brainwriting_sheet_id = ? AND row_index = ? AND column_index = ?",
            (brainwriting_id, sheet_id, row_index, column_index)
        ).fetchone()
        if existing:
            row = fetch_returning(con.execute(
                "UPDATE brainwriting_inputs SET content = ?, input_user_id = ?, updated_at = ? "
                f"WHERE id = ? RETURNING {_INPUT_RETURNING}",
                (normalized, input_user_id, now, existing[0])
            ))
        else:
            row = fetch_returning(con.execute(
                "INSERT INTO brainwriting_inputs "
                "(brainwriting_id, brainwriting_sheet_id, input_user_id, row_index, column_index, content, created_at, updated_at) "
                f"VALUES (?, ?, ?, ?, ?, ?, ?, ?) RETURNING {_INPUT_RETURNING}",
                (brainwriting_id, sheet_id, input_user_id, row_index, column_index, normalized, now, now)
            ))
        if not using_supabase():
            con.commit()
    return _to_input(row)


def get_brainwriting_sheets_by_brainwriting_id(brainwriting_id: int):
    with get_connection() as con:
        rows = con.execute(
            f"{_SHEET_SELECT} WHERE brainwriting_id = ? ORDER BY id",
            (brainwriting_id,)
        ).fetchall()
    return [_to_sheet(row) for row in rows]


def get_brainwriting_sheet_by_id(sheet_id: int):
    with get_connection() as con:
        row = con.execute(f"{_SHEET_SELECT} WHERE id = ?", (sheet_id,)).fetchone()
    return _to_sheet(row)


def get_brainwriting_sheet_with_brainwriting(sheet_id: int):
    sheet = get_brainwriting_sheet_by_id(sheet_id)
    if not sheet:
        return None
    brainwriting = get_brainwriting_by_id_internal(sheet['brainwriting_id'])
    if not brainwriting:
        return None
    return {'sheet': sheet, 'brainwriting': brainwriting}


def get_brainwriting_inputs_by_sheet_id(sheet_id: int):
    with get_connection() as con:
        rows = con.execute(
            f"{_INPUT_SELECT} WHERE bi.brainwriting_sheet_id = ? ORDER BY bi.id",
            (sheet_id,)
        ).fetchall()
    return [_to_input(row) for row in rows]


def get_brainwriting_inputs_by_brainwriting_id(brainwriting_id: int):
    with get_connection() as con:
        rows = con.execute(
            f"{_INPUT_SELECT} WHERE bi.brainwriting_id = ? ORDER BY bi.id",
            (brainwriting_id,)
        ).fetchall()
    return [_to_input(row) for row in rows]


def get_brainwriting_users_by_brainwriting_id(brainwriting_id: int):
    """参加順（brainwriting_users.id 昇順）で返す"""
    with get_connection() as con:
        rows = con.execute("""
            SELECT bu.id, bu.brainwriting_id, bu.user_id, u.name, bu.created_at, bu.updated_at
            FROM brainwriting_users bu
            LEFT JOIN users u ON bu.user_id = u.id
            WHERE bu.brainwriting_id = ?
            ORDER BY bu.id
        """, (brainwriting_id,)).fetchall()
    return rows_to_dicts(USER_COLUMNS, rows)


def is_brainwriting_user(brainwriting_id: int, user_id: str) -> bool:
    with get_connection() as con:
        row = con.execute(
            "SELECT 1 FROM brainwriting_users WHERE brainwriting_id = ? AND user_id = ?",
            (brainwriting_id, user_id)
        ).fetchone()
    return row is not None


# ==================== 詳細取得 ====================

def _with_sheets_inputs_users(brainwriting: dict) -> dict:
    brainwriting_id = brainwriting['id']
    return {
        **brainwriting,
        'sheets': get_brainwriting_sheets_by_brainwriting_id(brainwriting_id),
        'inputs': get_brainwriting_inputs_by_brainwriting_id(brainwriting_id),
        'users': get_brainwriting_users_by_brainwriting_id(brainwriting_id),
    }


def get_brainwriting_detail_by_id(brainwriting_id: int, user_id: str):
    """作成者向けの詳細"""
    brainwriting = get_brainwriting_by_id(brainwriting_id, user_id)
    if not brainwriting:
        return None
    return _with_sheets_inputs_users(brainwriting)


def get_brainwriting_detail_for_brainwriting_user(sheet_id: int, user_id: str):
    """参加者向けに1シート分の詳細を返す"""
    found = get_brainwriting_sheet_with_brainwriting(sheet_id)
    if not found:
        return None
    brainwriting = found['brainwriting']
    if not is_brainwriting_user(brainwriting['id'], user_id):
        return None
    return {
        **brainwriting,
        'sheets': [found['sheet']],
        'inputs': get_brainwriting_inputs_by_sheet_id(sheet_id),
        'users': get_brainwriting_users_by_brainwriting_id(brainwriting['id']),
    }


def get_brainwriting_team_by_brainwriting_id(brainwriting_id: int, user_id: str):
    """チーム利用の参加者向け詳細"""
    if not is_brainwriting_user(brainwriting_id, user_id):
        return None
    brainwriting = get_brainwriting_by_id_internal(brainwriting_id)
    if not brainwriting:
        return None
    return _with_sheets_inputs_users(brainwriting)


def get_brainwriting_results_by_id(brainwriting_id: int):
    brainwriting = get_brainwriting_by_id_internal(brainwriting_id)
    if not brainwriting or not brainwriting['is_results_public']:
        return None
    return _with_sheets_inputs_users(brainwriting)


# ==================== 参加 ====================

def join_brainwriting(brainwriting_id: int, user_id: str, usage_scope: str):
    """
    ブレインライティングに参加する

    X投稿では唯一のシートを参加者にロックし、参加順の行に空入力を作る。
    チーム利用ではシート作成（開始）後の新規参加を受け付けない。

    Raises:
        BrainwritingError: 参加済み・上限到達・編集中・参加不可
    """
    now = now_jst()
    now_text = now.strftime('%Y-%m-%d %H:%M:%S')
    with get_connection() as con:
        existing = con.execute(
            "SELECT 1 FROM brainwriting_users WHERE brainwriting_id = ? AND user_id = ?",
            (brainwriting_id, user_id)
        ).fetchone()
        if existing:
            raise BrainwritingError('既に参加しています')

        user_count = con.execute(
            "SELECT COUNT(*) FROM brainwriting_users WHERE brainwriting_id = ?",
            (brainwriting_id,)
        ).fetchone()[0]
        if user_count >= MAX_USERS:
            raise BrainwritingError('参加人数が上限に達しています')

        sheet = None
        if usage_scope == USAGE_SCOPE['XPOST']:
            sheet = con.execute(
                "SELECT id, current_user_id, lock_expires_at FROM brainwriting_sheets "
                "WHERE brainwriting_id = ? ORDER BY id LIMIT 1",
                (brainwriting_id,)
            ).fetchone()
            if sheet is None:
                raise BrainwritingError('シートが見つかりません', 404)
            if _is_locked_by_other(sheet[1], sheet[2], user_id):
                raise BrainwritingError('他の方が編集中です')
        else:
            has_sheets = con.execute(
                "SELECT 1 FROM brainwriting_sheets WHERE brainwriting_id = ? LIMIT 1",
                (brainwriting_id,)
            ).fetchone()
            if has_sheets:
                raise BrainwritingError('参加できません')

        join_row = fetch_returning(con.execute(
            "INSERT INTO brainwriting_users (brainwriting_id, user_id, created_at, updated_at) "
            "VALUES (?, ?, ?, ?) RETURNING id, brainwriting_id, user_id, NULL, created_at, updated_at",
            (brainwriting_id, user_id, now_text, now_text)
        ))

        sheet_id = None
        if sheet is not None:
            sheet_id = sheet[0]
            lock_expires_at = (now + timedelta(minutes=LOCK_DURATION_MINUTES)).strftime('%Y-%m-%d %H:%M:%S')
            con.execute(
                "UPDATE brainwriting_sheets SET current_user_id = ?, lock_expires_at = ?, updated_at = ? WHERE id = ?",
                (user_id, lock_expires_at, now_text, sheet_id)
            )
            # 参加前の人数が新しい行のインデックスになる
            _insert_empty_row(con, brainwriting_id, sheet_id, user_id, user_count, now_text)

        if not using_supabase():
            con.commit()

    logger.info("User %s joined brainwriting %s (%s)", user_id, brainwriting_id, usage_scope)
    return {'data': row_to_dict(USER_COLUMNS, join_row), 'sheetId': sheet_id}


def create_sheets_for_team(brainwriting_id: int):
    """参加者ごとにシートを作成し、各自を最初の担当者にする"""
    now = now_str()
    with get_connection() as con:
        user_rows = con.execute(
            "SELECT user_id FROM brainwriting_users WHERE brainwriting_id = ? ORDER BY id",
            (brainwriting_id,)
        ).fetchall()
        sheet_ids = [
            _insert_sheet_with_inputs(con, brainwriting_id, user_row[0], now)
            for user_row in user_rows
        ]
        if not using_supabase():
            con.commit()
    return sheet_ids


def check_join_status(brainwriting_id: int, user_id: str):
    with get_connection() as con:
        join_row = con.execute(
            "SELECT bu.id, bu.brainwriting_id, bu.user_id, u.name, bu.created_at, bu.updated_at "
            "FROM brainwriting_users bu LEFT JOIN users u ON bu.user_id = u.id "
            "WHERE bu.brainwriting_id = ? AND bu.user_id = ?",
            (brainwriting_id, user_id)
        ).fetchone()
        sheet_row = con.execute(
            "SELECT id FROM brainwriting_sheets WHERE brainwriting_id = ? ORDER BY id LIMIT 1",
            (brainwriting_id,)
        ).fetchone()
    return {
        'isJoined': join_row is not None,
        'joinData': row_to_dict(USER_COLUMNS, join_row),
        'sheetId': sheet_row[0] if sheet_row else None,
    }


def check_user_count(brainwriting_id: int):
    with get_connection() as con:
        count = con.execute(
            "SELECT COUNT(*) FROM brainwriting_users WHERE brainwriting_id = ?",
            (brainwriting_id,)
        ).fetchone()[0]
    return {
        'currentCount': count,
        'maxCount': MAX_USERS,
        'isFull': count >= MAX_USERS,
    }


def check_team_joinable(brainwriting_id: int, user_id: str):
    """シート作成前なら誰でも、作成後は参加者のみ参加可能"""
    sheets = get_brainwriting_sheets_by_brainwriting_id(brainwriting_id)
    if not sheets:
        return {'canJoin': True}
    return {'canJoin': is_brainwriting_user(brainwriting_id, user_id)}


def check_sheet_lock_status(brainwriting_id: int, user_id: str):
    with get_connection() as con:
        sheet = con.execute(
            "SELECT current_user_id, lock_expires_at FROM brainwriting_sheets "
            "WHERE brainwriting_id = ? ORDER BY id LIMIT 1",
            (brainwriting_id,)
        ).fetchone()
    if sheet is None:
        return {'isLocked': False, 'lockExpiresAt': None}
    current_user_id, lock_expires_at = sheet
    is_locked = _is_locked_by_other(current_user_id, lock_expires_at, user_id)
    parsed = _parse_datetime(lock_expires_at)
    return {
        'isLocked': is_locked,
        'lockExpiresAt': parsed.isoformat() if is_locked and parsed else None,
    }


def clear_abandoned_sessions(brainwriting_id: int) -> int:
    """
    ロック期限切れで1件も入力していない担当者を外す

    ロックを解除し、そのシート上の担当者の入力行を削除して参加者からも除く。
    解除したシート数を返す。
    """
    now = now_jst()
    now_text = now.strftime('%Y-%m-%d %H:%M:%S')
    cleared = 0
    with get_connection() as con:
        sheets = con.execute(
            "SELECT id, current_user_id, lock_expires_at FROM brainwriting_sheets "
            "WHERE brainwriting_id = ? AND current_user_id IS NOT NULL AND lock_expires_at IS NOT NULL",
            (brainwriting_id,)
        ).fetchall()
        for sheet_id, current_user_id, lock_expires_at in sheets:
            expires_at = _parse_datetime(lock_expires_at)
            if expires_at is None or expires_at > now:
                continue
            filled = con.execute(
                "SELECT COUNT(*) FROM brainwriting_inputs "
                "WHERE brainwriting_sheet_id = ? AND input_user_id = ? AND content IS NOT NULL AND content <> ''",
                (sheet_id, current_user_id)
            ).fetchone()[0]
            if filled:
                continue
            con.execute(
                "UPDATE brainwriting_sheets SET current_user_id = NULL, lock_expires_at = NULL, updated_at = ? WHERE id = ?",
                (now_text, sheet_id)
            )
            con.execute(
                "DELETE FROM brainwriting_inputs WHERE brainwriting_sheet_id = ? AND input_user_id = ?",
                (sheet_id, current_user_id)
            )
            con.execute(
                "DELETE FROM brainwriting_users WHERE brainwriting_id = ? AND user_id = ?",
                (brainwriting_id, current_user_id)
            )
            cleared += 1
            logger.info("Cleared abandoned session of %s on sheet %s", current_user_id, sheet_id)
        if not using_supabase():
            con.commit()
    return cleared


def unlock_sheet(sheet_id: int, user_id: str) -> bool:
    """user_id がロックを保持している場合のみ解除する"""
    with get_connection() as con:
        cursor = con.execute(
            "UPDATE brainwriting_sheets SET current_user_id = NULL, lock_expires_at = NULL, updated_at = ? "
            "WHERE id = ? AND current_user_id = ?",
            (now_str(), sheet_id, user_id)
        )
        updated = cursor.rowcount > 0
        if not using_supabase():
            con.commit()
    return updated


def rotate_sheet_to_next_user(sheet_id: int, current_user_id: str):
    """シートを1行目の記入者から数えた次の参加者に渡す。最後の参加者の次は NULL"""
    sheet = get_brainwriting_sheet_by_id(sheet_id)
    if not sheet:
        raise BrainwritingError('シートが見つかりません', 404)

    inputs = get_brainwriting_inputs_by_sheet_id(sheet_id)
    users = get_brainwriting_users_by_brainwriting_id(sheet['brainwriting_id'])
    sorted_users = sort_users_by_first_row(inputs, users)

    current_index = next(
        (i for i, user in enumerate(sorted_users) if user['user_id'] == current_user_id),
        -1,
    )
    if current_index == -1:
        raise BrainwritingError('現在のユーザーが参加者一覧に見つかりません')

    next_index = current_index + 1
    next_user_id = sorted_users[next_index]['user_id'] if next_index < len(sorted_users) else None

    with get_connection() as con:
        con.execute(
            "UPDATE brainwriting_sheets SET current_user_id = ?, updated_at = ? WHERE id = ?",
            (next_user_id, now_str(), sheet_id)
        )
        if not using_supabase():
            con.commit()
    return {'success': True, 'nextUserId': next_user_id}


# ==================== 表示用ヘルパー ====================

def sort_users_by_first_row(inputs: list[dict], users: list[dict]) -> list[dict]:
    """1行目の記入者を先頭にして参加順で並べ直す（巡回）"""
    first_row_input = next((item for item in inputs if item['row_index'] == 0), None)
    if first_row_input is None:
        return list(users)
    first_index = next(
        (i for i, user in enumerate(users) if user['user_id'] == first_row_input['input_user_id']),
        -1,
    )
    if first_index == -1:
        return list(users)
    return users[first_index:] + users[:first_index]


def convert_to_row_data(inputs: list[dict], users: list[dict]) -> list[dict]:
    """シートの入力を常に6行×3アイデアの行データに変換"""
    rows = []
    for row_index in range(MAX_USERS):
        if row_index < len(users) and users[row_index].get('user_name'):
            name = users[row_index]['user_name']
        else:
            name = f'参加者{row_index + 1}'
        rows.append({'name': name, 'ideas': [''] * IDEAS_PER_ROW})

    for item in inputs:
        row_index = item['row_index']
        column_index = item['column_index']
        if 0 <= row_index < MAX_USERS and 0 <= column_index < IDEAS_PER_ROW:
            rows[row_index]['ideas'][column_index] = item['content'] or ''
    return rows
