"""マンダラート・オズボーンのチェックリストのAPIとページ、AIワーカーの受け口"""
from idealab import app
from flask import abort, jsonify, render_template, request, session
from pydantic import ValidationError

from idealab.ai_worker import (
    TARGET_TYPES,
    AIGenerationError,
    get_latest_ai_generation,
    handle_worker_request,
    start_ai_generation,
)
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
from idealab import mandalart as mandalart_store
from idealab import osborn_checklist as osborn_store
from idealab.schemas import (
    MandalartForm,
    MandalartInputForm,
    OsbornChecklistForm,
    OsbornChecklistInputForm,
)
import logging

logger = logging.getLogger(__name__)

MANDALART_NAME = 'マンダラート'
OSBORN_NAME = 'オズボーンのチェックリスト'


def _validated_form(form_class):
    """(フォーム, エラーレスポンス) を返す"""
    body = get_json_body()
    if body is None:
        return None, bad_request('リクエストボディが必要です')
    try:
        return form_class.model_validate(body), None
    except ValidationError as e:
        return None, invalid_data(e)


def _patch_results_public(record_id, update_func, name):
    parsed_id = parse_positive_int(record_id)
    if parsed_id is None:
        return invalid_id()
    body = get_json_body()
    if body is None or not isinstance(body.get('isResultsPublic'), bool):
        return invalid_data()
    try:
        record = update_func(parsed_id, session['user_id'], body['isResultsPublic'])
        if not record:
            return not_found(name)
        return jsonify(record)
    except Exception as e:
        logger.error(f"{name}公開設定更新エラー: {e}", exc_info=True)
        return server_error()


def _start_generation(record_id, target_type, name):
    parsed_id = parse_positive_int(record_id)
    if parsed_id is None:
        return invalid_id()
    try:
        result = start_ai_generation(target_type, parsed_id, session['user_id'], name)
        return jsonify(result), 202
    except AIGenerationError as e:
        return jsonify({'error': e.message}), e.status
    except Exception as e:
        logger.error(f"{name} AI生成開始エラー: {e}", exc_info=True)
        return server_error()


# ==================== マンダラート ====================

@app.route('/api/mandalarts', methods=['GET'])
@api_login_required
def api_list_mandalarts():
    try:
        return jsonify(mandalart_store.get_mandalarts_by_user_id(session['user_id']))
    except Exception as e:
        logger.error(f"マンダラート一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/mandalarts', methods=['POST'])
@api_login_required
def api_create_mandalart():
    form, error = _validated_form(MandalartForm)
    if error:
        return error
    try:
        mandalart = mandalart_store.create_mandalart(
            session['user_id'], form.title, form.theme_name, form.description
        )
        return jsonify(mandalart), 201
    except Exception as e:
        logger.error(f"マンダラート作成エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/mandalarts/<mandalart_id>', methods=['GET'])
@api_login_required
def api_get_mandalart(mandalart_id):
    parsed_id = parse_positive_int(mandalart_id)
    if parsed_id is None:
        return invalid_id()
    try:
        detail = mandalart_store.get_mandalart_detail_by_id(parsed_id, session['user_id'])
        if not detail:
            return not_found(MANDALART_NAME)
        detail['aiGeneration'] = get_latest_ai_generation(TARGET_TYPES['MANDALART'], parsed_id)
        return jsonify(detail)
    except Exception as e:
        logger.error(f"マンダラート取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/mandalarts/<mandalart_id>', methods=['PUT'])
@api_login_required
def api_update_mandalart(mandalart_id):
    parsed_id = parse_positive_int(mandalart_id)
    if parsed_id is None:
        return invalid_id()
    form, error = _validated_form(MandalartForm)
    if error:
        return error
    try:
        mandalart = mandalart_store.update_mandalart(
            parsed_id, session['user_id'], form.title, form.theme_name, form.description
        )
        if not mandalart:
            return not_found(MANDALART_NAME)
        return jsonify(mandalart)
    except Exception as e:
        logger.error(f"マンダラート更新エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/mandalarts/<mandalart_id>', methods=['DELETE'])
@api_login_required
def api_delete_mandalart(mandalart_id):
    parsed_id = parse_positive_int(mandalart_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not mandalart_store.delete_mandalart(parsed_id, session['user_id']):
            return not_found(MANDALART_NAME)
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"マンダラート削除エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/mandalarts/inputs', methods=['POST'])
@api_login_required
def api_upsert_mandalart_input():
    form, error = _validated_form(MandalartInputForm)
    if error:
        return error
    try:
        saved = mandalart_store.upsert_mandalart_input(
            form.mandalart_id,
            session['user_id'],
            form.section_row_index,
            form.section_column_index,
            form.row_index,
            form.column_index,
            form.content,
        )
        if not saved:
            return not_found(MANDALART_NAME)
        return jsonify(saved)
    except Exception as e:
        logger.error(f"マンダラート入力エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/mandalarts/<mandalart_id>/results-public', methods=['PATCH'])
@api_login_required
def api_update_mandalart_results_public(mandalart_id):
    return _patch_results_public(mandalart_id, mandalart_store.update_mandalart_is_results_public, MANDALART_NAME)


@app.route('/api/mandalarts/<mandalart_id>/ai-generate', methods=['POST'])
@api_login_required
def api_generate_mandalart(mandalart_id):
    return _start_generation(mandalart_id, TARGET_TYPES['MANDALART'], MANDALART_NAME)


@app.route('/api/mandalarts/<mandalart_id>/status', methods=['GET'])
@api_login_required
def api_mandalart_status(mandalart_id):
    parsed_id = parse_positive_int(mandalart_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not mandalart_store.get_mandalart_by_id(parsed_id, session['user_id']):
            return not_found(MANDALART_NAME)
        return jsonify({'generation': get_latest_ai_generation(TARGET_TYPES['MANDALART'], parsed_id)})
    except Exception as e:
        logger.error(f"マンダラートAI状態取得エラー: {e}", exc_info=True)
        return server_error()


# ==================== オズボーンのチェックリスト ====================

@app.route('/api/osborn-checklists', methods=['GET'])
@api_login_required
def api_list_osborn_checklists():
    try:
        return jsonify(osborn_store.get_osborn_checklists_by_user_id(session['user_id']))
    except Exception as e:
        logger.error(f"オズボーン一覧取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/osborn-checklists', methods=['POST'])
@api_login_required
def api_create_osborn_checklist():
    form, error = _validated_form(OsbornChecklistForm)
    if error:
        return error
    try:
        checklist = osborn_store.create_osborn_checklist(
            session['user_id'], form.title, form.theme_name, form.description
        )
        return jsonify(checklist), 201
    except Exception as e:
        logger.error(f"オズボーン作成エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/osborn-checklists/<checklist_id>', methods=['GET'])
@api_login_required
def api_get_osborn_checklist(checklist_id):
    parsed_id = parse_positive_int(checklist_id)
    if parsed_id is None:
        return invalid_id()
    try:
        detail = osborn_store.get_osborn_checklist_detail_by_id(parsed_id, session['user_id'])
        if not detail:
            return not_found(OSBORN_NAME)
        detail['aiGeneration'] = get_latest_ai_generation(TARGET_TYPES['OSBORN_CHECKLIST'], parsed_id)
        return jsonify(detail)
    except Exception as e:
        logger.error(f"オズボーン取得エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/osborn-checklists/<checklist_id>', methods=['PUT'])
@api_login_required
def api_update_osborn_checklist(checklist_id):
    parsed_id = parse_positive_int(checklist_id)
    if parsed_id is None:
        return invalid_id()
    form, error = _validated_form(OsbornChecklistForm)
    if error:
        return error
    try:
        checklist = osborn_store.update_osborn_checklist(
            parsed_id, session['user_id'], form.title, form.theme_name, form.description
        )
        if not checklist:
            return not_found(OSBORN_NAME)
        return jsonify(checklist)
    except Exception as e:
        logger.error(f"オズボーン更新エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/osborn-checklists/<checklist_id>', methods=['DELETE'])
@api_login_required
def api_delete_osborn_checklist(checklist_id):
    parsed_id = parse_positive_int(checklist_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not osborn_store.delete_osborn_checklist(parsed_id, session['user_id']):
            return not_found(OSBORN_NAME)
        return jsonify({'success': True})
    except Exception as e:
        logger.error(f"オズボーン削除エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/osborn-checklists/inputs', methods=['POST'])
@api_login_required
def api_upsert_osborn_checklist_input():
    form, error = _validated_form(OsbornChecklistInputForm)
    if error:
        return error
    if not osborn_store.is_valid_checklist_type(form.checklist_type):
        return bad_request('チェックリストタイプが無効です')
    try:
        saved = osborn_store.upsert_osborn_checklist_input(
            form.osborn_checklist_id, session['user_id'], form.checklist_type, form.content
        )
        if not saved:
            return not_found(OSBORN_NAME)
        return jsonify(saved)
    except Exception as e:
        logger.error(f"オズボーン入力エラー: {e}", exc_info=True)
        return server_error()


@app.route('/api/osborn-checklists/<checklist_id>/results-public', methods=['PATCH'])
@api_login_required
def api_update_osborn_checklist_results_public(checklist_id):
    return _patch_results_public(
        checklist_id, osborn_store.update_osborn_checklist_is_results_public, OSBORN_NAME
    )


@app.route('/api/osborn-checklists/<checklist_id>/ai-generate', methods=['POST'])
@api_login_required
def api_generate_osborn_checklist(checklist_id):
    return _start_generation(checklist_id, TARGET_TYPES['OSBORN_CHECKLIST'], OSBORN_NAME)


@app.route('/api/osborn-checklists/<checklist_id>/status', methods=['GET'])
@api_login_required
def api_osborn_checklist_status(checklist_id):
    parsed_id = parse_positive_int(checklist_id)
    if parsed_id is None:
        return invalid_id()
    try:
        if not osborn_store.get_osborn_checklist_by_id(parsed_id, session['user_id']):
            return not_found(OSBORN_NAME)
        return jsonify({
            'generation': get_latest_ai_generation(TARGET_TYPES['OSBORN_CHECKLIST'], parsed_id),
            'inputsCount': osborn_store.count_filled_inputs(parsed_id),
        })
    except Exception as e:
        logger.error(f"オズボーンAI状態取得エラー: {e}", exc_info=True)
        return server_error()


# ==================== AIワーカー ====================

@app.route('/api/ai-worker', methods=['POST'])
def api_ai_worker():
    """別デプロイからの生成依頼を同期的に処理する（x-api-secret で認証）"""
    status, body = handle_worker_request(dict(request.headers), request.get_data(as_text=True))
    return jsonify(body), status


# ==================== 公開ページ ====================

@app.route('/mandalarts/public/<token>')
def mandalart_public(token):
    detail = mandalart_store.get_mandalart_detail_by_token(token)
    if not detail:
        abort(404)
    cells = {
        mandalart_store.input_key(
            item['section_row_index'], item['section_column_index'], item['row_index'], item['column_index']
        ): item['content'] or ''
        for item in detail['inputs']
    }
    # 中央セクションのサブテーマを各セクションの中央にも表示する
    for (section_row, section_col), _ in mandalart_store.SECTION_MAPPING:
        cells[mandalart_store.input_key(section_row, section_col, 1, 1)] = cells.get(
            mandalart_store.input_key(1, 1, section_row, section_col), ''
        )
    cells[mandalart_store.input_key(1, 1, 1, 1)] = detail['theme_name']
    return render_template(
        'mandalart_public.html',
        mandalart=detail,
        cells=cells,
        grid_range=range(mandalart_store.GRID_SIZE),
    )


@app.route('/osborn-checklists/public/<token>')
def osborn_checklist_public(token):
    detail = osborn_store.get_osborn_checklist_detail_by_token(token)
    if not detail:
        abort(404)
    contents = {item['checklist_type']: item['content'] or '' for item in detail['inputs']}
    items = [
        {
            'type': checklist_type,
            'name': osborn_store.OSBORN_CHECKLIST_NAMES[checklist_type],
            'description': osborn_store.OSBORN_CHECKLIST_DESCRIPTIONS[checklist_type],
            'content': contents.get(checklist_type, ''),
        }
        for checklist_type in osborn_store.OSBORN_CHECKLIST_TYPES
    ]
    return render_template('osborn_checklist_public.html', checklist=detail, items=items)
