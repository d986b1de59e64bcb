"""ユーザー・アイデアカテゴリ・アイデアのAPI"""
from idealab import app
from flask import jsonify, request, session
from pydantic import ValidationError

from idealab.api_utils import (
    api_login_required,
    bad_request,
    get_json_body,
    invalid_data,
    invalid_id,
    not_found,
    parse_positive_int,
    server_error,
)
from idealab.db import get_user_by_id, update_user
from idealab.idea import (
    check_category_ownership,
    create_idea,
    create_idea_category,
    delete_idea,
    delete_idea_category,
    get_idea_categories_by_user_id,
    get_idea_category_by_id,
    get_ideas_by_category_id,
    update_idea,
    update_idea_category,
)
from idealab.schemas import IdeaCategoryForm, IdeaForm, UserForm
import logging

logger = logging.getLogger(__name__)


# ==================== ユーザー ====================

@app.route('/api/users/me', methods=['GET'])
@api_login_required
def api_get_me():
    try:
        user = get_user_by_id(session['user_id'])
        if not user:
            return not_found('ユーザー')
        return jsonify(user)
    except Exception as e:
        logger.error(f"ユーザー取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/users/me', methods=['PUT'])
@api_login_required
def api_update_me():
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    try:
        form = UserForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        user = update_user(session['user_id'], form.name)
        if not user:
            return not_found('ユーザー')
        session['user_name'] = user['name']
        return jsonify(user)
    except Exception as e:
        logger.error(f"ユーザー更新エラー: {e}", exc_info=True)
        return server_error()


# ==================== カテゴリ ====================

@app.route('/api/idea-categories', methods=['GET'])
@api_login_required
def api_list_idea_categories():
    try:
        return jsonify(get_idea_categories_by_user_id(session['user_id']))
    except Exception as e:
        logger.error(f"カテゴリ一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/idea-categories', methods=['POST'])
@api_login_required
def api_create_idea_category():
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    try:
        form = IdeaCategoryForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        category = create_idea_category(session['user_id'], form.name, form.description)
        return jsonify(category), 201
    except Exception as e:
        logger.error(f"カテゴリ作成エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/idea-categories/<category_id>', methods=['GET'])
@api_login_required
def api_get_idea_category(category_id):
    parsed_id = parse_positive_int(category_id)
    if parsed_id is None:
        return invalid_id()
    try:
        category = get_idea_category_by_id(parsed_id, session['user_id'])
        if not category:
            return not_found('カテゴリ')
        return jsonify(category)
    except Exception as e:
        logger.error(f"カテゴリ取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/idea-categories/<category_id>', methods=['PUT'])
@api_login_required
def api_update_idea_category(category_id):
    parsed_id = parse_positive_int(category_id)
    if parsed_id is None:
        return invalid_id()
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    try:
        form = IdeaCategoryForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        category = update_idea_category(parsed_id, session['user_id'], form.name, form.description)
        if not category:
            return not_found('カテゴリ')
        return jsonify(category)
    except Exception as e:
        logger.error(f"カテゴリ更新エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/idea-categories/<category_id>', methods=['DELETE'])
@api_login_required
def api_delete_idea_category(category_id):
    parsed_id = parse_positive_int(category_id)
    if parsed_id is None:
        return invalid_id()
    try:
        category = delete_idea_category(parsed_id, session['user_id'])
        if not category:
            return not_found('カテゴリ')
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"カテゴリ削除エラー: {e}", exc_info=True)
        return server_error()


# ==================== アイデア ====================

@app.route('/api/ideas', methods=['GET'])
@api_login_required
def api_list_ideas():
    category_id = parse_positive_int(request.args.get('categoryId'))
    if category_id is None:
        return bad_request('カテゴリIDが無効です')
    try:
        if not check_category_ownership(category_id, session['user_id']):
            return not_found('カテゴリ')
        return jsonify(get_ideas_by_category_id(category_id, session['user_id']))
    except Exception as e:
        logger.error(f"アイデア一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/ideas', methods=['POST'])
@api_login_required
def api_create_idea():
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    category_id = parse_positive_int(body.get('categoryId'))
    if category_id is None:
        return bad_request('カテゴリIDが無効です')
    try:
        form = IdeaForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        if not check_category_ownership(category_id, session['user_id']):
            return not_found('カテゴリ')
        idea = create_idea(category_id, form.name, form.description, form.priority)
        return jsonify(idea), 201
    except Exception as e:
        logger.error(f"アイデア作成エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/ideas/<idea_id>', methods=['PUT'])
@api_login_required
def api_update_idea(idea_id):
    parsed_id = parse_positive_int(idea_id)
    if parsed_id is None:
        return invalid_id()
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    category_id = parse_positive_int(body.get('categoryId'))
    if category_id is None:
        return bad_request('カテゴリIDが無効です')
    try:
        form = IdeaForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        idea = update_idea(parsed_id, session['user_id'], category_id, form.name, form.description, form.priority)
        if not idea:
            return not_found('アイデア')
        return jsonify(idea)
    except Exception as e:
        logger.error(f"アイデア更新エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/ideas/<idea_id>', methods=['DELETE'])
@api_login_required
def api_delete_idea(idea_id):
    parsed_id = parse_positive_int(idea_id)
    if parsed_id is None:
        return invalid_id()
    try:
        idea = delete_idea(parsed_id, session['user_id'])
        if not idea:
            return not_found('アイデア')
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"アイデア削除エラー: {e}", exc_info=True)
        return server_error()
