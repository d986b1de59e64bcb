"""オズボーンのチェックリストのデータアクセス"""
from idealab import idea_framework
from idealab.db import fetch_returning, get_connection, now_str, row_to_dict, using_supabase
from idealab.tokens import generate_osborn_checklist_public_url

TABLE = 'osborn_checklists'

# 9つの視点（表示順）
OSBORN_CHECKLIST_TYPES = (
    'transfer',
    'apply',
    'modify',
    'magnify',
    'minify',
    'substitute',
    'rearrange',
    'reverse',
    'combine',
)

OSBORN_CHECKLIST_NAMES = {
    'transfer': '転用',
    'apply': '応用',
    'modify': '変更',
    'magnify': '拡大',
    'minify': '縮小',
    'substitute': '代用',
    'rearrange': '再配置',
    'reverse': '逆転',
    'combine': '結合',
}

OSBORN_CHECKLIST_DESCRIPTIONS = {
    'transfer': '他の用途に転用できないか？\n例：コーヒーカップを鉛筆立てに、古着をクッションカバーに',
    'apply': '他のアイデアを応用できないか？\n例：自然界の仕組みを製品に、他業界の成功事例を自社に',
    'modify': '形・色・音・匂いなどを変更できないか？\n例：形を丸く、色を明るく、香りを加える',
    'magnify': '大きく・長く・厚く・強くできないか？\n例：機能を増やす、サイズを拡大、回数を増やす',
    'minify': '小さく・短く・薄く・軽くできないか？\n例：コンパクト化、簡略化、短縮化',
    'substitute': '他のもので代用できないか？\n例：材料を変える、別の手段を使う、場所を変える',
    'rearrange': '順序・パターン・レイアウトを変えられないか？\n例：手順を逆に、配置を変更、組み合わせを変える',
    'reverse': '逆にできないか？\n例：上下反転、プラスをマイナスに、主従を入れ替える',
    'combine': '組み合わせられないか？\n例：機能を統合、アイデアを融合、異分野を掛け合わせる',
}

INPUT_COLUMNS = ('id', 'osborn_checklist_id', 'checklist_type', 'content', 'created_at', 'updated_at')


def is_valid_checklist_type(checklist_type) -> bool:
    return checklist_type in OSBORN_CHECKLIST_TYPES


def _with_public_url(checklist):
    if checklist:
        checklist['publicUrl'] = generate_osborn_checklist_public_url(checklist['public_token'])
    return checklist


def get_osborn_checklists_by_user_id(user_id: str):
    return idea_framework.list_by_user_id(TABLE, user_id)


def create_osborn_checklist(user_id: str, title: str, theme_name: str, description: str | None):
    return _with_public_url(idea_framework.create(TABLE, user_id, title, theme_name, description))


def update_osborn_checklist(checklist_id: int, user_id: str, title: str, theme_name: str, description: str | None):
    return idea_framework.update(TABLE, checklist_id, user_id, title, theme_name, description)


def delete_osborn_checklist(checklist_id: int, user_id: str):
    return idea_framework.delete(TABLE, checklist_id, user_id)


def get_osborn_checklist_by_id(checklist_id: int, user_id: str):
    return idea_framework.get_by_id(TABLE, checklist_id, user_id)


def update_osborn_checklist_is_results_public(checklist_id: int, user_id: str, is_results_public: bool):
    return idea_framework.update_is_results_public(TABLE, checklist_id, user_id, is_results_public)


def get_osborn_checklist_inputs(checklist_id: int):
    with get_connection() as con:
        rows = con.execute(
            f"SELECT {', '.join(INPUT_COLUMNS)} FROM osborn_checklist_inputs WHERE osborn_checklist_id = ? ORDER BY id",
            (checklist_id,)
        ).fetchall()
    return [row_to_dict(INPUT_COLUMNS, row) for row in rows]


def count_filled_inputs(checklist_id: int) -> dict:
    inputs = get_osborn_checklist_inputs(checklist_id)
    filled = sum(1 for item in inputs if item['content'] and item['content'].strip())
    return {'filled': filled, 'total': len(OSBORN_CHECKLIST_TYPES)}


def get_osborn_checklist_detail_by_id(checklist_id: int, user_id: str):
    checklist = get_osborn_checklist_by_id(checklist_id, user_id)
    if not checklist:
        return None
    return {**_with_public_url(checklist), 'inputs': get_osborn_checklist_inputs(checklist_id)}


def get_osborn_checklist_detail_by_token(token: str):
    checklist = idea_framework.get_public_by_token(TABLE, token)
    if not checklist:
        return None
    return {**checklist, 'inputs': get_osborn_checklist_inputs(checklist['id'])}


def save_osborn_checklist_input(con, checklist_id: int, checklist_type: str, content: str | None, now: str):
    existing = con.execute(
        "SELECT id FROM osborn_checklist_inputs WHERE osborn_checklist_id = ? AND checklist_type = ?",
        (checklist_id, checklist_type)
    ).fetchone()
    if existing:
        return fetch_returning(con.execute(
            f"UPDATE osborn_checklist_inputs SET content = ?, updated_at = ? WHERE id = ? RETURNING {', '.join(INPUT_COLUMNS)}",
            (content, now, existing[0])
        ))
    return fetch_returning(con.execute(
        "INSERT INTO osborn_checklist_inputs (osborn_checklist_id, checklist_type, content, created_at, updated_at) "
        f"VALUES (?, ?, ?, ?, ?) RETURNING {', '.join(INPUT_COLUMNS)}",
        (checklist_id, checklist_type, content, now, now)
    ))


def upsert_osborn_checklist_input(checklist_id: int, user_id: str, checklist_type: str, content: str | None):
    """所有者でなければ None を返す"""
    if not is_valid_checklist_type(checklist_type):
        raise ValueError('チェックリストタイプが無効です')
    if not get_osborn_checklist_by_id(checklist_id, user_id):
        return None
    with get_connection() as con:
        saved = save_osborn_checklist_input(con, checklist_id, checklist_type, content or None, now_str())
        if not using_supabase():
            con.commit()
    return row_to_dict(INPUT_COLUMNS, saved)
