import os
import secrets
from urllib.parse import quote

APP_URL = os.environ.get('APP_URL', 'http://localhost:5000').rstrip('/')

X_INTENT_URL = 'https://twitter.com/intent/tweet'


def generate_token() -> str:
    """招待・公開用のトークン（32文字の16進数）を生成"""
    return secrets.token_hex(16)


def _build_url(path: str, token: str) -> str:
    if not token:
        raise ValueError('トークンが指定されていません')
    return f"{APP_URL}{path}/{token}"


def generate_invite_url(token: str) -> str:
    return _build_url('/brainwritings/invite', token)


def generate_mandalart_public_url(token: str) -> str:
    return _build_url('/mandalarts/public', token)


def generate_osborn_checklist_public_url(token: str) -> str:
    return _build_url('/osborn-checklists/public', token)


def format_brainwriting_for_x(brainwriting: dict) -> dict:
    """ブレインライティングの招待をX投稿用の文面に整形"""
    invite_url = generate_invite_url(brainwriting['invite_token'])
    content = (
        "🧠 ブレインライティング\n"
        f"📝 テーマ: {brainwriting['theme_name']}\n"
        "皆さんのアイデアをお待ちしています！\n"
        "ご協力お願いします🙏\n"
        "\n"
        f"🔗 参加はこちら: {invite_url}\n"
        "\n"
        "#アイデア研究所"
    )
    return {'content': content, 'url': build_x_intent_url(content)}


def build_x_intent_url(content: str) -> str:
    return f"{X_INTENT_URL}?text={quote(content, safe='')}"
