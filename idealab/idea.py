"""アイデアカテゴリとアイデアのデータアクセス"""
from idealab.db import fetch_returning, get_connection, now_str, row_to_dict, rows_to_dicts, using_supabase

CATEGORY_COLUMNS = ('id', 'user_id', 'name', 'description', 'created_at', 'updated_at')
IDEA_COLUMNS = ('id', 'idea_category_id', 'name', 'description', 'priority', 'created_at', 'updated_at')

_CATEGORY_SELECT = "SELECT id, user_id, name, description, created_at, updated_at FROM idea_categories"
_IDEA_SELECT = "SELECT i.id, i.idea_category_id, i.name, i.description, i.priority, i.created_at, i.updated_at FROM ideas i"


# ==================== カテゴリ ====================

def get_idea_categories_by_user_id(user_id: str):
    with get_connection() as con:
        rows = con.execute(
            f"{_CATEGORY_SELECT} WHERE user_id = ? ORDER BY id DESC",
            (user_id,)
        ).fetchall()
    return rows_to_dicts(CATEGORY_COLUMNS, rows)


def get_idea_category_by_id(category_id: int, user_id: str):
    with get_connection() as con:
        row = con.execute(
            f"{_CATEGORY_SELECT} WHERE id = ? AND user_id = ?",
            (category_id, user_id)
        ).fetchone()
    return row_to_dict(CATEGORY_COLUMNS, row)


def check_category_ownership(category_id: int, user_id: str) -> bool:
    with get_connection() as con:
        row = con.execute(
            "SELECT 1 FROM idea_categories WHERE id = ? AND user_id = ?",
            (category_id, user_id)
        ).fetchone()
    return row is not None


def create_idea_category(user_id: str, name: str, description: str | None):
    now = now_str()
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"INSERT INTO idea_categories (user_id, name, description, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?) RETURNING {', '.join(CATEGORY_COLUMNS)}",
            (user_id, name, description, now, now)
        ))
        if not using_supabase():
            con.commit()
    return row_to_dict(CATEGORY_COLUMNS, row)


def update_idea_category(category_id: int, user_id: str, name: str, description: str | None):
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"UPDATE idea_categories SET name = ?, description = ?, updated_at = ? "
            f"WHERE id = ? AND user_id = ? RETURNING {', '.join(CATEGORY_COLUMNS)}",
            (name, description, now_str(), category_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return row_to_dict(CATEGORY_COLUMNS, row)


def delete_idea_category(category_id: int, user_id: str):
    """削除したカテゴリを返す。アイデアはカスケード削除される"""
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"DELETE FROM idea_categories WHERE id = ? AND user_id = ? RETURNING {', '.join(CATEGORY_COLUMNS)}",
            (category_id, user_id)
        ))
        if not using_supabase():
            con.commit()
    return row_to_dict(CATEGORY_COLUMNS, row)


# ==================== アイデア ====================

def get_ideas_by_category_id(category_id: int, user_id: str):
    with get_connection() as con:
        rows = con.execute(
            f"{_IDEA_SELECT} JOIN idea_categories c ON i.idea_category_id = c.id "
            "WHERE i.idea_category_id = ? AND c.user_id = ? ORDER BY i.id DESC",
            (category_id, user_id)
        ).fetchall()
    return rows_to_dicts(IDEA_COLUMNS, rows)


def get_idea_by_id(idea_id: int, user_id: str):
    with get_connection() as con:
        row = con.execute(
            f"{_IDEA_SELECT} JOIN idea_categories c ON i.idea_category_id = c.id "
            "WHERE i.id = ? AND c.user_id = ?",
            (idea_id, user_id)
        ).fetchone()
    return row_to_dict(IDEA_COLUMNS, row)


def check_idea_ownership(idea_id: int, user_id: str) -> bool:
    return get_idea_by_id(idea_id, user_id) is not None


def create_idea(category_id: int, name: str, description: str | None, priority: str = 'medium'):
    now = now_str()
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"INSERT INTO ideas (idea_category_id, name, description, priority, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?, ?) RETURNING {', '.join(IDEA_COLUMNS)}",
            (category_id, name, description, priority, now, now)
        ))
        if not using_supabase():
            con.commit()
    return row_to_dict(IDEA_COLUMNS, row)


def update_idea(idea_id: int, user_id: str, category_id: int, name: str, description: str | None, priority: str):
    """所有者のアイデアのみ更新。移動先カテゴリも所有者のものに限る"""
    if not check_idea_ownership(idea_id, user_id) or not check_category_ownership(category_id, user_id):
        return None
    with get_connection() as con:
        row = fetch_returning(con.execute(
            f"UPDATE ideas SET idea_category_id = ?, name = ?, description = ?, priority = ?, updated_at = ? "
            f"WHERE id = ? RETURNING {', '.join(IDEA_COLUMNS)}",
            (category_id, name, description, priority, now_str(), idea_id)
        ))
        if not using_supabase():
            con.commit()
    return row_to_dict(IDEA_COLUMNS, row)


def delete_idea(idea_id: int, user_id: str):
    idea = get_idea_by_id(idea_id, user_id)
    if not idea:
        return None
    with get_connection() as con:
        con.execute("DELETE FROM ideas WHERE id = ?", (idea_id,))
        if not using_supabase():
            con.commit()
    return idea
