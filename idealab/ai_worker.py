"""
AI生成ジョブ

ai_generations テーブルで pending → processing → completed / failed の
状態を管理する。AI_WORKER_URL が設定されていれば別プロセスのワーカーへ
HTTP で依頼し、なければバックグラウンドスレッドで実行する。
"""
import hmac
import json
import logging
import os
import re
import threading
import time

import google.generativeai as genai
import requests
from google.api_core import exceptions as google_exceptions

from idealab import mandalart as mandalart_store
from idealab import osborn_checklist as osborn_store
from idealab.api_utils import parse_positive_int
from idealab.db import fetch_returning, get_connection, now_str, row_to_dict, using_supabase
from idealab.events import AI_EVENT_TYPES, publish_mandalart_event, publish_osborn_checklist_event

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY')
GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-2.5-flash')

AI_WORKER_URL = os.environ.get('AI_WORKER_URL')
AI_WORKER_SECRET_TOKEN = os.environ.get('AI_WORKER_SECRET_TOKEN')
AI_WORKER_TIMEOUT_SECONDS = 10

if GEMINI_API_KEY:
    genai.configure(api_key=GEMINI_API_KEY)

TARGET_TYPES = {
    'MANDALART': 'mandalart',
    'OSBORN_CHECKLIST': 'osborn_checklist',
}

GENERATION_STATUS = {
    'PENDING': 'pending',
    'PROCESSING': 'processing',
    'COMPLETED': 'completed',
    'FAILED': 'failed',
}

INVALID_THEME_MESSAGE = 'テーマが適切ではありません'
GENERATION_FAILED_MESSAGE = 'AIでのアイデア生成に失敗しました。再度お試しください。'

GENERATION_COLUMNS = (
    'id', 'target_type', 'target_id', 'generation_status',
    'generation_result', 'error_message', 'created_at', 'updated_at',
)

_MAX_CELL_LENGTH = 100


class AIGenerationError(Exception):
    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.message = message
        self.status = status


# ==================== 生成レコード ====================

def _to_generation(row):
    generation = row_to_dict(GENERATION_COLUMNS, row)
    if generation and generation['generation_result']:
        try:
            generation['generation_result'] = json.loads(generation['generation_result'])
        except json.JSONDecodeError:
            pass
    return generation


def create_ai_generation(target_type: str, target_id: int):
    now = now_str()
    with get_connection() as con:
        row = fetch_returning(con.execute(
            "INSERT INTO ai_generations (target_type, target_id, generation_status, created_at, updated_at) "
            f"VALUES (?, ?, ?, ?, ?) RETURNING {', '.join(GENERATION_COLUMNS)}",
            (target_type, target_id, GENERATION_STATUS['PENDING'], now, now)
        ))
        if not using_supabase():
            con.commit()
    return _to_generation(row)


def get_ai_generation_by_id(generation_id: int):
    with get_connection() as con:
        row = con.execute(
            f"SELECT {', '.join(GENERATION_COLUMNS)} FROM ai_generations WHERE id = ?",
            (generation_id,)
        ).fetchone()
    return _to_generation(row)


def get_latest_ai_generation(target_type: str, target_id: int):
    with get_connection() as con:
        row = con.execute(
            f"SELECT {', '.join(GENERATION_COLUMNS)} FROM ai_generations "
            "WHERE target_type = ? AND target_id = ? ORDER BY id DESC LIMIT 1",
            (target_type, target_id)
        ).fetchone()
    return _to_generation(row)


def update_ai_generation_status(generation_id: int, status: str, error_message: str | None = None) -> None:
    with get_connection() as con:
        con.execute(
            "UPDATE ai_generations SET generation_status = ?, error_message = ?, updated_at = ? WHERE id = ?",
            (status, error_message, now_str(), generation_id)
        )
        if not using_supabase():
            con.commit()


def update_ai_generation_result(generation_id: int, result: dict) -> None:
    with get_connection() as con:
        con.execute(
            "UPDATE ai_generations SET generation_status = ?, generation_result = ?, error_message = NULL, "
            "updated_at = ? WHERE id = ?",
            (GENERATION_STATUS['COMPLETED'], json.dumps(result, ensure_ascii=False), now_str(), generation_id)
        )
        if not using_supabase():
            con.commit()


# ==================== Gemini 呼び出し ====================

def _extract_json(response_text: str) -> dict:
    try:
        return json.loads(response_text)
    except json.JSONDecodeError:
        json_match = re.search(r'\{.*\}', response_text, re.DOTALL)
        if not json_match:
            raise
        return json.loads(json_match.group())


def _generate_json(prompt: str, system_instruction: str, max_retries: int = 3, initial_delay: int = 2) -> dict:
    """Gemini に JSON で回答させる。レート制限時は指数バックオフでリトライ"""
    if not GEMINI_API_KEY:
        raise RuntimeError('GEMINI_API_KEY が設定されていません')

    model = genai.GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)
    print(f"[AI生成] モデル: {GEMINI_MODEL} を使用します")

    response = None
    for attempt in range(max_retries):
        try:
            response = model.generate_content(
                prompt,
                generation_config={'response_mime_type': 'application/json'},
            )
            if attempt > 0:
                print(f"[AI生成] リトライ成功しました（試行 {attempt + 1}/{max_retries}）")
            break
        except google_exceptions.ResourceExhausted:
            if attempt < max_retries - 1:
                wait_time = initial_delay * (2 ** attempt)
                print(f"[AI生成] レート制限エラー（429）。{wait_time}秒後にリトライします... (試行 {attempt + 1}/{max_retries})")
                logger.warning(f"Rate limit error, retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})")
                time.sleep(wait_time)
            else:
                print(f"[AI生成] リトライ上限に達しました（{max_retries}回試行）")
                logger.error(f"Max retries reached ({max_retries} attempts)")
                raise

    response_text = response.text.strip() if response is not None else ''
    if not response_text:
        raise RuntimeError('AI応答が空です')
    print(f"[AI生成] AIからのレスポンス: {response_text[:200]}...")
    return _extract_json(response_text)


def _is_blank(content) -> bool:
    return not content or not str(content).strip()


def _cell_text(value) -> str:
    return str(value or '')[:_MAX_CELL_LENGTH]


# ==================== マンダラート ====================

def _build_mandalart_prompt(mandalart: dict, sub_themes: list[str], ideas: dict[str, list[str]]) -> str:
    lines = ["【現在のサブテーマ】"]
    for i, theme in enumerate(sub_themes):
        lines.append(f"{i + 1}. {theme or '(空欄)'}")
    lines.append("")
    lines.append("【現在のアイデア】")
    for i in range(8):
        sub_theme = sub_themes[i] or f"サブテーマ{i + 1}"
        section_ideas = ideas[str(i)]
        filled_count = sum(1 for idea in section_ideas if idea)
        lines.append(f"\nセクション{i + 1}「{sub_theme}」({filled_count}/8入力済み):")
        for j, idea in enumerate(section_ideas):
            lines.append(f"  {j + 1}. {idea or '(空欄)'}")
    existing_data = "\n".join(lines)

    return f"""あなたはアイデア発想の専門家です。マンダラートの空欄を埋めてください。

【タイトル】
{mandalart['title']}

【テーマ】
{mandalart['theme_name']}

【説明】
{mandalart['description'] or 'なし'}

{existing_data}

【お願い】
1. まず、テーマが適切かどうかを判断してください
2. 適切であれば、空欄の部分のみを埋めてください
3. 既に入力済みの項目はそのまま維持してください
4. 各アイデアは30文字以内で簡潔に
5. 具体的で実践可能なアイデアにしてください
6. サブテーマが不適切な場合、そのセクションのアイデアは生成せず空文字にしてください

判断基準（テーマ・サブテーマ・アイデア共通）：
- 意味のある言葉や概念であること
- 無意味な文字列（例：「あああ」「111」など）ではないこと
- アイデア発想が可能な具体性があること
- 不適切な内容（暴力、差別、犯罪、公序良俗に反する内容など）を含まないこと

JSON形式で以下のように出力してください：
{{
  "isValid": true または false,
  "reason": "判断理由（日本語で簡潔に）",
  "subThemes": ["サブテーマ1", "サブテーマ2", ..., "サブテーマ8"],
  "ideas": {{
    "0": ["アイデア1-1", "アイデア1-2", ..., "アイデア1-8"],
    ...
    "7": ["アイデア8-1", "アイデア8-2", ..., "アイデア8-8"]
  }}
}}

重要：
- 既存の入力値がある場合は、その値をそのまま出力に含めてください
- 空欄（"(空欄)"）の部分のみ新しいアイデアを生成してください
- テーマが不適切な場合は、subThemesとideasは空にしてください"""


def generate_mandalart(mandalart_id: int, user_id: str) -> dict:
    """空欄のサブテーマとアイデアを生成して保存する。既存の入力は上書きしない"""
    mandalart = mandalart_store.get_mandalart_by_id(mandalart_id, user_id)
    if not mandalart:
        raise RuntimeError('マンダラートが見つかりません')

    existing = {
        mandalart_store.input_key(
            item['section_row_index'], item['section_column_index'], item['row_index'], item['column_index']
        ): item['content']
        for item in mandalart_store.get_mandalart_inputs(mandalart_id)
    }
    existing_sub_themes = [
        existing.get(mandalart_store.input_key(1, 1, row, col)) or ''
        for row, col in mandalart_store.SUB_THEME_POSITIONS
    ]
    existing_ideas = {
        str(index): [
            existing.get(mandalart_store.input_key(section[0], section[1], row, col)) or ''
            for row, col in mandalart_store.SURROUNDING_CELLS
        ]
        for section, index in mandalart_store.SECTION_MAPPING
    }

    result = _generate_json(
        _build_mandalart_prompt(mandalart, existing_sub_themes, existing_ideas),
        "あなたはテーマの妥当性判断とマンダラート法によるアイデア発想の専門家です。JSON形式で回答してください。",
    )

    if not result.get('isValid'):
        return {'success': False, 'errorMessage': INVALID_THEME_MESSAGE}

    sub_themes = result.get('subThemes')
    ideas = result.get('ideas')
    if not isinstance(sub_themes, list) or len(sub_themes) != 8 or not isinstance(ideas, dict):
        return {'success': False, 'errorMessage': GENERATION_FAILED_MESSAGE}
    for i in range(8):
        section_ideas = ideas.get(str(i))
        if not isinstance(section_ideas, list) or len(section_ideas) != 8:
            return {'success': False, 'errorMessage': GENERATION_FAILED_MESSAGE}

    now = now_str()
    with get_connection() as con:
        for (row, col), sub_theme in zip(mandalart_store.SUB_THEME_POSITIONS, sub_themes):
            if _is_blank(existing.get(mandalart_store.input_key(1, 1, row, col))):
                mandalart_store.save_mandalart_cell(con, mandalart_id, 1, 1, row, col, _cell_text(sub_theme), now)
        for (section_row, section_col), index in mandalart_store.SECTION_MAPPING:
            for (row, col), idea in zip(mandalart_store.SURROUNDING_CELLS, ideas[str(index)]):
                key = mandalart_store.input_key(section_row, section_col, row, col)
                if _is_blank(existing.get(key)):
                    mandalart_store.save_mandalart_cell(
                        con, mandalart_id, section_row, section_col, row, col, _cell_text(idea), now
                    )
        if not using_supabase():
            con.commit()

    return {'success': True, 'result': {'subThemes': sub_themes, 'ideas': ideas}}


# ==================== オズボーンのチェックリスト ====================

def _build_osborn_prompt(checklist: dict) -> str:
    perspectives = "\n".join(
        f"{i}. {osborn_store.OSBORN_CHECKLIST_NAMES[key]}（{key}）：{osborn_store.OSBORN_CHECKLIST_DESCRIPTIONS[key].splitlines()[0]}"
        for i, key in enumerate(osborn_store.OSBORN_CHECKLIST_TYPES, 1)
    )
    ideas_format = ",\n".join(
        f'    "{key}": "{osborn_store.OSBORN_CHECKLIST_NAMES[key]}のアイデア"'
        for key in osborn_store.OSBORN_CHECKLIST_TYPES
    )
    return f"""あなたはアイデア発想の専門家です。以下の2つのステップを実行してください。

ステップ1: テーマの妥当性判断
以下のテーマが、アイデア発想のテーマとして適切かどうかを判断してください。

【タイトル】
{checklist['title']}

【テーマ】
{checklist['theme_name']}

【説明】
{checklist['description'] or 'なし'}

判断基準：
- 意味のある言葉や概念であること
- 無意味な文字列（例：「あああ」「111」など）ではないこと
- アイデア発想が可能な具体性があること
- 不適切な内容（暴力、差別など）を含まないこと

ステップ2: アイデア生成（テーマが適切な場合のみ）
テーマが適切であれば、オズボーンのチェックリストの9つの視点から具体的で実践的なアイデアを1つずつ生成してください。各アイデアは100文字以内で簡潔にまとめてください。

{perspectives}

JSON形式で以下のように出力してください：
{{
  "isValid": true または false,
  "reason": "判断理由（日本語で簡潔に）",
  "ideas": {{
{ideas_format}
  }}
}}

※テーマが不適切な場合は、ideasフィールドは空のオブジェクトにしてください。"""


def generate_osborn(checklist_id: int, user_id: str) -> dict:
    checklist = osborn_store.get_osborn_checklist_by_id(checklist_id, user_id)
    if not checklist:
        raise RuntimeError('オズボーンのチェックリストが見つかりません')

    result = _generate_json(
        _build_osborn_prompt(checklist),
        "あなたはテーマの妥当性判断とアイデア発想の専門家です。JSON形式で回答してください。",
    )

    if not result.get('isValid'):
        return {'success': False, 'errorMessage': INVALID_THEME_MESSAGE}

    ideas = result.get('ideas')
    if not isinstance(ideas, dict) or any(not ideas.get(key) for key in osborn_store.OSBORN_CHECKLIST_TYPES):
        return {'success': False, 'errorMessage': GENERATION_FAILED_MESSAGE}

    existing = {
        item['checklist_type']: item['content']
        for item in osborn_store.get_osborn_checklist_inputs(checklist_id)
    }
    now = now_str()
    with get_connection() as con:
        for key in osborn_store.OSBORN_CHECKLIST_TYPES:
            if _is_blank(existing.get(key)):
                osborn_store.save_osborn_checklist_input(con, checklist_id, key, str(ideas[key])[:1000], now)
        if not using_supabase():
            con.commit()

    return {'success': True, 'result': {key: ideas[key] for key in osborn_store.OSBORN_CHECKLIST_TYPES}}


# ==================== ジョブ実行 ====================

_GENERATORS = {
    TARGET_TYPES['MANDALART']: (generate_mandalart, publish_mandalart_event),
    TARGET_TYPES['OSBORN_CHECKLIST']: (generate_osborn, publish_osborn_checklist_event),
}


def process_ai_generation(generation_id: int, target_type: str, target_id: int, user_id: str) -> dict:
    """生成を実行し、結果をレコードとイベントに反映する"""
    if target_type not in _GENERATORS:
        raise ValueError(f'未対応のtargetTypeです: {target_type}')
    generator, publish = _GENERATORS[target_type]

    print(f"[AI生成] 開始: generationId={generation_id} targetType={target_type} targetId={target_id}")
    update_ai_generation_status(generation_id, GENERATION_STATUS['PROCESSING'])

    try:
        outcome = generator(target_id, user_id)
    except Exception as e:
        logger.error(f"AI generation {generation_id} failed: {e}", exc_info=True)
        update_ai_generation_status(generation_id, GENERATION_STATUS['FAILED'], str(e))
        publish(target_id, AI_EVENT_TYPES['AI_GENERATION_FAILED'], {
            'generationId': generation_id,
            'errorMessage': GENERATION_FAILED_MESSAGE,
        })
        return {'success': False, 'errorMessage': str(e)}

    if not outcome['success']:
        print(f"[AI生成] 失敗: {outcome['errorMessage']}")
        update_ai_generation_status(generation_id, GENERATION_STATUS['FAILED'], outcome['errorMessage'])
        publish(target_id, AI_EVENT_TYPES['AI_GENERATION_FAILED'], {
            'generationId': generation_id,
            'errorMessage': outcome['errorMessage'],
        })
        return outcome

    update_ai_generation_result(generation_id, outcome['result'])
    publish(target_id, AI_EVENT_TYPES['AI_GENERATION_COMPLETED'], {'generationId': generation_id})
    print(f"[AI生成] 完了: generationId={generation_id}")
    return outcome


def _dispatch(generation_id: int, target_type: str, target_id: int, user_id: str) -> None:
    payload = {
        'generationId': generation_id,
        'targetType': target_type,
        'targetId': target_id,
        'userId': user_id,
    }
    if AI_WORKER_URL:
        response = requests.post(
            AI_WORKER_URL,
            headers={'x-api-secret': AI_WORKER_SECRET_TOKEN or ''},
            json=payload,
            timeout=AI_WORKER_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        return

    thread = threading.Thread(
        target=process_ai_generation,
        args=(generation_id, target_type, target_id, user_id),
        daemon=True,
    )
    thread.start()


def _is_owner(target_type: str, target_id: int, user_id: str) -> bool:
    if target_type == TARGET_TYPES['MANDALART']:
        return mandalart_store.get_mandalart_by_id(target_id, user_id) is not None
    return osborn_store.get_osborn_checklist_by_id(target_id, user_id) is not None


def start_ai_generation(target_type: str, target_id: int, user_id: str, not_found_name: str) -> dict:
    """
    AI生成を開始する

    Raises:
        AIGenerationError: 対象なし（404）、実行中・完了済み（409）、依頼失敗（500）
    """
    if not _is_owner(target_type, target_id, user_id):
        raise AIGenerationError(f'{not_found_name}が見つかりません', 404)

    latest = get_latest_ai_generation(target_type, target_id)
    if latest:
        status = latest['generation_status']
        if status in (GENERATION_STATUS['PENDING'], GENERATION_STATUS['PROCESSING']):
            raise AIGenerationError('AI生成は既に実行中です', 409)
        if status == GENERATION_STATUS['COMPLETED']:
            raise AIGenerationError('AI生成は既に完了しています', 409)

    generation = create_ai_generation(target_type, target_id)
    try:
        _dispatch(generation['id'], target_type, target_id, user_id)
    except Exception as e:
        logger.error(f"AIワーカーの起動に失敗しました: {e}", exc_info=True)
        update_ai_generation_status(generation['id'], GENERATION_STATUS['FAILED'], 'AIワーカーの起動に失敗しました')
        raise AIGenerationError('AI生成の開始に失敗しました', 500) from e

    return {
        'generationId': generation['id'],
        'status': GENERATION_STATUS['PENDING'],
        'message': 'AI生成を開始しました',
    }


# ==================== ワーカーエントリポイント ====================

def handle_worker_request(headers: dict, body) -> tuple[int, dict]:
    """
    リモートワーカーへの依頼を処理する

    Args:
        headers: リクエストヘッダー（キーは小文字でも可）
        body: JSON文字列または辞書

    Returns:
        (ステータスコード, レスポンスボディ)
    """
    if not AI_WORKER_SECRET_TOKEN:
        logger.error("AI_WORKER_SECRET_TOKEN is not configured")
        return 500, {'error': 'Server configuration error'}

    normalized = {str(key).lower(): value for key, value in (headers or {}).items()}
    provided = normalized.get('x-api-secret') or ''
    if not hmac.compare_digest(str(provided).encode('utf-8'), AI_WORKER_SECRET_TOKEN.encode('utf-8')):
        return 403, {'error': 'Forbidden'}

    if isinstance(body, (str, bytes)):
        try:
            payload = json.loads(body or '{}')
        except json.JSONDecodeError:
            return 400, {'error': 'Invalid JSON'}
    else:
        payload = body or {}
    if not isinstance(payload, dict):
        return 400, {'error': 'Invalid JSON'}

    # 旧形式 {generationId, osbornChecklistId, userId} にも対応
    if 'osbornChecklistId' in payload and 'targetType' not in payload:
        payload = {
            **payload,
            'targetType': TARGET_TYPES['OSBORN_CHECKLIST'],
            'targetId': payload['osbornChecklistId'],
        }

    required = ('generationId', 'targetType', 'targetId', 'userId')
    if any(payload.get(key) in (None, '') for key in required):
        return 400, {'error': 'Missing required parameters'}
    if payload['targetType'] not in _GENERATORS:
        return 400, {'error': f"Unknown targetType: {payload['targetType']}"}
    generation_id = parse_positive_int(payload['generationId'])
    target_id = parse_positive_int(payload['targetId'])
    if generation_id is None or target_id is None:
        return 400, {'error': 'Invalid generationId or targetId'}

    outcome = process_ai_generation(
        generation_id,
        payload['targetType'],
        target_id,
        str(payload['userId']),
    )
    if not outcome['success']:
        return 200, {'success': False, 'error': outcome['errorMessage']}
    return 200, {'success': True}


def lambda_handler(event, context):
    """Function URL 経由で呼び出された場合のエントリポイント"""
    status, body = handle_worker_request(event.get('headers') or {}, event.get('body'))
    return {
        'statusCode': status,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body, ensure_ascii=False),
    }
