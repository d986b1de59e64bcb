import logging
from functools import wraps

from flask import jsonify, redirect, request, session, url_for
from pydantic import ValidationError

from idealab.schemas import validation_details

logger = logging.getLogger(__name__)


def get_current_user_id():
    return session.get('user_id')


def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if 'user_id' not in session:
            next_url = request.full_path.rstrip('?')
            return redirect(url_for('login', next=next_url))
        return view_func(*args, **kwargs)

    return wrapper


def api_login_required(view_func):
    """APIルート用。未ログインなら 401 JSON を返す"""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if 'user_id' not in session:
            return unauthorized()
        return view_func(*args, **kwargs)

    return wrapper


def unauthorized():
    return jsonify({'error': '認証が必要です'}), 401


def not_found(name: str):
    return jsonify({'error': f'{name}が見つかりません'}), 404


def forbidden(message: str = 'アクセス権限がありません'):
    return jsonify({'error': message}), 403


def bad_request(message: str):
    return jsonify({'error': message}), 400


def invalid_id():
    return bad_request('無効なIDです')


def invalid_data(error: ValidationError | None = None):
    body = {'error': '入力データが無効です'}
    if error is not None:
        body['details'] = validation_details(error)
    return jsonify(body), 400


def conflict(message: str):
    return jsonify({'error': message}), 409


def server_error(message: str = 'サーバーエラーが発生しました'):
    return jsonify({'error': message}), 500


def get_json_body():
    """JSONボディを辞書で返す。JSONでない場合は None"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def parse_positive_int(value):
    """クエリ文字列などのIDを整数に変換。不正なら None"""
    # JSON の true や 1.9 をIDとして受け付けない
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed <= 0:
        return None
    return parsed
