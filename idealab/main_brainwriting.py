"""ブレインライティングのAPIとページ"""
from idealab import app
from flask import abort, jsonify, render_template, request, session
from pydantic import ValidationError

from idealab.api_utils import (
    api_login_required,
    bad_request,
    conflict,
    forbidden,
    get_json_body,
    invalid_data,
    invalid_id,
    login_required,
    not_found,
    parse_positive_int,
    server_error,
)
from idealab.brainwriting import (
    USAGE_SCOPE,
    BrainwritingError,
    check_join_status,
    check_sheet_lock_status,
    check_team_joinable,
    check_user_count,
    clear_abandoned_sessions,
    convert_to_row_data,
    create_brainwriting,
    create_sheets_for_team,
    delete_brainwriting,
    get_brainwriting_by_id,
    get_brainwriting_by_id_internal,
    get_brainwriting_by_token,
    get_brainwriting_detail_by_id,
    get_brainwriting_detail_for_brainwriting_user,
    get_brainwriting_inputs_by_brainwriting_id,
    get_brainwriting_inputs_by_sheet_id,
    get_brainwriting_results_by_id,
    get_brainwriting_sheet_by_id,
    get_brainwriting_sheets_by_brainwriting_id,
    get_brainwriting_team_by_brainwriting_id,
    get_brainwriting_users_by_brainwriting_id,
    get_brainwritings_by_user_id,
    is_brainwriting_user,
    join_brainwriting,
    rotate_sheet_to_next_user,
    sort_users_by_first_row,
    unlock_sheet,
    update_brainwriting,
    update_brainwriting_is_invite_active,
    update_brainwriting_is_results_public,
    upsert_brainwriting_input,
)
from idealab.events import BRAINWRITING_EVENT_TYPES, publish_brainwriting_event
from idealab.schemas import BrainwritingForm, BrainwritingInputForm
from idealab.tokens import format_brainwriting_for_x, generate_invite_url
import logging

logger = logging.getLogger(__name__)

NOT_SHEET_HOLDER_MESSAGE = 'このシートの担当ではありません'


def _can_view(brainwriting_id: int, user_id: str) -> bool:
    """作成者または参加者なら閲覧可能"""
    return (
        get_brainwriting_by_id(brainwriting_id, user_id) is not None
        or is_brainwriting_user(brainwriting_id, user_id)
    )


def _build_sheet_views(detail: dict) -> list[dict]:
    """シートごとに1行目の記入者から並べた6行の表示データを作る"""
    views = []
    for sheet in detail['sheets']:
        sheet_inputs = [item for item in detail['inputs'] if item['brainwriting_sheet_id'] == sheet['id']]
        sorted_users = sort_users_by_first_row(sheet_inputs, detail['users'])
        views.append({
            'sheet': sheet,
            'rows': convert_to_row_data(sheet_inputs, sorted_users),
        })
    return views


# ==================== 作成・一覧・詳細 ====================

@app.route('/api/brainwritings', methods=['GET'])
@api_login_required
def api_list_brainwritings():
    try:
        return jsonify(get_brainwritings_by_user_id(session['user_id']))
    except Exception as e:
        logger.error(f"ブレインライティング一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings', methods=['POST'])
@api_login_required
def api_create_brainwriting():
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    try:
        form = BrainwritingForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        brainwriting = create_brainwriting(
            session['user_id'], form.title, form.theme_name, form.description, form.usage_scope
        )
        logger.info("Brainwriting %s created by %s", brainwriting['id'], session['user_id'])
        return jsonify(brainwriting), 201
    except Exception as e:
        logger.error(f"ブレインライティング作成エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>', methods=['GET'])
@api_login_required
def api_get_brainwriting(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    try:
        detail = get_brainwriting_detail_by_id(parsed_id, session['user_id'])
        if not detail:
            return not_found('ブレインライティング')
        detail['inviteUrl'] = generate_invite_url(detail['invite_token'])
        return jsonify(detail)
    except Exception as e:
        logger.error(f"ブレインライティング取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>', methods=['PUT'])
@api_login_required
def api_update_brainwriting(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    try:
        form = BrainwritingForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    try:
        brainwriting = update_brainwriting(
            parsed_id, session['user_id'], form.title, form.theme_name, form.description, form.usage_scope
        )
        if not brainwriting:
            return not_found('ブレインライティング')
        return jsonify(brainwriting)
    except Exception as e:
        logger.error(f"ブレインライティング更新エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>', methods=['DELETE'])
@api_login_required
def api_delete_brainwriting(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    try:
        brainwriting = delete_brainwriting(parsed_id, session['user_id'])
        if not brainwriting:
            return not_found('ブレインライティング')
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"ブレインライティング削除エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/x-post', methods=['GET'])
@api_login_required
def api_brainwriting_x_post(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    brainwriting = get_brainwriting_by_id(parsed_id, session['user_id'])
    if not brainwriting:
        return not_found('ブレインライティング')
    return jsonify(format_brainwriting_for_x(brainwriting))


@app.route('/api/brainwritings/invite/<token>', methods=['GET'])
@api_login_required
def api_get_brainwriting_by_token(token):
    try:
        brainwriting = get_brainwriting_by_token(token)
        if not brainwriting:
            return not_found('ブレインライティング')
        return jsonify({
            'id': brainwriting['id'],
            'title': brainwriting['title'],
            'themeName': brainwriting['theme_name'],
            'description': brainwriting['description'],
            'usageScope': brainwriting['usage_scope'],
            'isInviteActive': brainwriting['is_invite_active'],
        })
    except Exception as e:
        logger.error(f"招待情報取得エラー: {e}", exc_info=True)
        return server_error()


# ==================== 参加 ====================

@app.route('/api/brainwritings/join', methods=['POST'])
@api_login_required
def api_join_brainwriting():
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    brainwriting_id = parse_positive_int(body.get('brainwritingId'))
    if brainwriting_id is None:
        return invalid_id()

    user_id = session['user_id']
    try:
        brainwriting = get_brainwriting_by_id_internal(brainwriting_id)
        if not brainwriting:
            return not_found('ブレインライティング')
        if not brainwriting['is_invite_active']:
            return forbidden('招待URLは無効になっています')

        result = join_brainwriting(brainwriting_id, user_id, brainwriting['usage_scope'])
    except BrainwritingError as e:
        return jsonify({'error': e.message}), e.status
    except Exception as e:
        logger.error(f"ブレインライティング参加エラー: {e}", exc_info=True)
        return server_error()

    publish_brainwriting_event(brainwriting_id, BRAINWRITING_EVENT_TYPES['USER_JOINED'])
    return jsonify(result), 201


@app.route('/api/brainwritings/<brainwriting_id>/join-status', methods=['GET'])
@api_login_required
def api_brainwriting_join_status(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()

    user_id = session['user_id']
    try:
        brainwriting = get_brainwriting_by_id_internal(parsed_id)
        if not brainwriting:
            return not_found('ブレインライティング')
        usage_scope = request.args.get('usageScope') or brainwriting['usage_scope']

        if usage_scope == USAGE_SCOPE['XPOST']:
            # 放置されたロックを先に解放してから状態を返す
            clear_abandoned_sessions(parsed_id)
            return jsonify({
                **check_join_status(parsed_id, user_id),
                **check_sheet_lock_status(parsed_id, user_id),
                **check_user_count(parsed_id),
            })

        return jsonify({
            **check_join_status(parsed_id, user_id),
            **check_user_count(parsed_id),
            **check_team_joinable(parsed_id, user_id),
        })
    except Exception as e:
        logger.error(f"参加状況取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/start', methods=['POST'])
@api_login_required
def api_start_brainwriting(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()

    user_id = session['user_id']
    try:
        brainwriting = get_brainwriting_by_id_internal(parsed_id)
        if not brainwriting:
            return not_found('ブレインライティング')
        if brainwriting['usage_scope'] != USAGE_SCOPE['TEAM']:
            return bad_request('チーム利用のブレインライティングのみ開始できます')
        if not is_brainwriting_user(parsed_id, user_id):
            return forbidden('参加していません')
        if get_brainwriting_sheets_by_brainwriting_id(parsed_id):
            return conflict('既に開始しています')

        sheet_ids = create_sheets_for_team(parsed_id)
    except Exception as e:
        logger.error(f"ブレインライティング開始エラー: {e}", exc_info=True)
        return server_error()

    publish_brainwriting_event(parsed_id, BRAINWRITING_EVENT_TYPES['BRAINWRITING_STARTED'])
    return jsonify({'success': True, 'sheetIds': sheet_ids})


# ==================== 入力・シート ====================

@app.route('/api/brainwritings/input', methods=['POST'])
@api_login_required
def api_upsert_brainwriting_input():
    body = get_json_body()
    if body is None:
        return bad_request('リクエストボディが必要です')
    try:
        form = BrainwritingInputForm.model_validate(body)
    except ValidationError as e:
        return invalid_data(e)

    user_id = session['user_id']
    try:
        sheet = get_brainwriting_sheet_by_id(form.brainwriting_sheet_id)
        if not sheet or sheet['brainwriting_id'] != form.brainwriting_id:
            return not_found('シート')
        if not is_brainwriting_user(form.brainwriting_id, user_id):
            return forbidden()
        if sheet['current_user_id'] != user_id:
            return forbidden(NOT_SHEET_HOLDER_MESSAGE)

        saved = upsert_brainwriting_input(
            form.brainwriting_id,
            form.brainwriting_sheet_id,
            user_id,
            form.row_index,
            form.column_index,
            form.content,
        )
        return jsonify(saved)
    except Exception as e:
        logger.error(f"ブレインライティング入力エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/inputs', methods=['GET'])
@api_login_required
def api_brainwriting_inputs(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not get_brainwriting_by_id_internal(parsed_id):
            return not_found('ブレインライティング')
        if not _can_view(parsed_id, session['user_id']):
            return forbidden()
        return jsonify(get_brainwriting_inputs_by_brainwriting_id(parsed_id))
    except Exception as e:
        logger.error(f"入力一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/sheets', methods=['GET'])
@api_login_required
def api_brainwriting_sheets(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not get_brainwriting_by_id_internal(parsed_id):
            return not_found('ブレインライティング')
        if not _can_view(parsed_id, session['user_id']):
            return forbidden()
        return jsonify(get_brainwriting_sheets_by_brainwriting_id(parsed_id))
    except Exception as e:
        logger.error(f"シート一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/users', methods=['GET'])
@api_login_required
def api_brainwriting_users(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not get_brainwriting_by_id_internal(parsed_id):
            return not_found('ブレインライティング')
        if not _can_view(parsed_id, session['user_id']):
            return forbidden()
        return jsonify(get_brainwriting_users_by_brainwriting_id(parsed_id))
    except Exception as e:
        logger.error(f"参加者一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/team', methods=['GET'])
@api_login_required
def api_brainwriting_team(brainwriting_id):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    try:
        detail = get_brainwriting_team_by_brainwriting_id(parsed_id, session['user_id'])
        if not detail:
            return not_found('ブレインライティング')
        return jsonify(detail)
    except Exception as e:
        logger.error(f"チーム詳細取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/sheets/<sheet_id>', methods=['GET'])
@api_login_required
def api_brainwriting_sheet_detail(sheet_id):
    parsed_id = parse_positive_int(sheet_id)
    if parsed_id is None:
        return invalid_id()
    try:
        detail = get_brainwriting_detail_for_brainwriting_user(parsed_id, session['user_id'])
        if not detail:
            return not_found('シート')
        return jsonify(detail)
    except Exception as e:
        logger.error(f"シート詳細取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/sheets/<sheet_id>/inputs', methods=['GET'])
@api_login_required
def api_brainwriting_sheet_inputs(sheet_id):
    parsed_id = parse_positive_int(sheet_id)
    if parsed_id is None:
        return invalid_id()
    try:
        sheet = get_brainwriting_sheet_by_id(parsed_id)
        if not sheet:
            return not_found('シート')
        if not _can_view(sheet['brainwriting_id'], session['user_id']):
            return forbidden()
        return jsonify(get_brainwriting_inputs_by_sheet_id(parsed_id))
    except Exception as e:
        logger.error(f"シート入力取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/sheets/<sheet_id>/complete', methods=['POST'])
@api_login_required
def api_complete_brainwriting_sheet(sheet_id):
    """チーム利用は次の参加者へシートを回し、X投稿はロックを解除する"""
    parsed_id = parse_positive_int(sheet_id)
    if parsed_id is None:
        return invalid_id()

    user_id = session['user_id']
    try:
        sheet = get_brainwriting_sheet_by_id(parsed_id)
        if not sheet:
            return not_found('シート')
        brainwriting = get_brainwriting_by_id_internal(sheet['brainwriting_id'])
        if not brainwriting:
            return not_found('ブレインライティング')
        if sheet['current_user_id'] != user_id:
            return forbidden(NOT_SHEET_HOLDER_MESSAGE)

        if brainwriting['usage_scope'] == USAGE_SCOPE['TEAM']:
            result = rotate_sheet_to_next_user(parsed_id, user_id)
            publish_brainwriting_event(brainwriting['id'], BRAINWRITING_EVENT_TYPES['SHEET_ROTATED'])
            return jsonify(result)

        unlock_sheet(parsed_id, user_id)
        return jsonify({'success': True})
    except BrainwritingError as e:
        return jsonify({'error': e.message}), e.status
    except Exception as e:
        logger.error(f"シート完了エラー: {e}", exc_info=True)
        return server_error()


# ==================== 公開設定 ====================

def _patch_flag(brainwriting_id, field_name, update_func):
    parsed_id = parse_positive_int(brainwriting_id)
    if parsed_id is None:
        return invalid_id()
    body = get_json_body()
    if body is None or not isinstance(body.get(field_name), bool):
        return invalid_data()
    try:
        brainwriting = update_func(parsed_id, session['user_id'], body[field_name])
        if not brainwriting:
            return not_found('ブレインライティング')
        return jsonify(brainwriting)
    except Exception as e:
        logger.error(f"ブレインライティング設定更新エラー ({field_name}): {e}", exc_info=True)
        return server_error()


@app.route('/api/brainwritings/<brainwriting_id>/invite-active', methods=['PATCH'])
@api_login_required
def api_update_brainwriting_invite_active(brainwriting_id):
    return _patch_flag(brainwriting_id, 'isInviteActive', update_brainwriting_is_invite_active)


@app.route('/api/brainwritings/<brainwriting_id>/results-public', methods=['PATCH'])
@api_login_required
def api_update_brainwriting_results_public(brainwriting_id):
    return _patch_flag(brainwriting_id, 'isResultsPublic', update_brainwriting_is_results_public)


# ==================== ページ ====================

@app.route('/brainwritings/invite/<token>')
@login_required
def brainwriting_invite(token):
    brainwriting = get_brainwriting_by_token(token)
    if not brainwriting:
        abort(404)
    return render_template('brainwriting_invite.html', brainwriting=brainwriting)


@app.route('/brainwritings/<int:brainwriting_id>')
@login_required
def brainwriting_detail(brainwriting_id):
    user_id = session['user_id']
    detail = get_brainwriting_detail_by_id(brainwriting_id, user_id)
    is_owner = detail is not None
    if not detail:
        detail = get_brainwriting_team_by_brainwriting_id(brainwriting_id, user_id)
    if not detail:
        abort(404)
    x_post = format_brainwriting_for_x(detail) if is_owner else None
    return render_template(
        'brainwriting_detail.html',
        brainwriting=detail,
        sheet_views=_build_sheet_views(detail),
        is_owner=is_owner,
        x_post=x_post,
        invite_url=generate_invite_url(detail['invite_token']),
    )


@app.route('/brainwritings/<int:brainwriting_id>/results')
def brainwriting_results(brainwriting_id):
    detail = get_brainwriting_results_by_id(brainwriting_id)
    if not detail:
        abort(404)
    return render_template(
        'brainwriting_results.html',
        brainwriting=detail,
        sheet_views=_build_sheet_views(detail),
    )
