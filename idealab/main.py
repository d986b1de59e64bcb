from idealab import app
from flask import (
    Response,
    flash,
    redirect,
    render_template,
    request,
    send_from_directory,
    session,
    stream_with_context,
    url_for,
)
from idealab.api_utils import (
    api_login_required,
    bad_request,
    forbidden,
    get_current_user_id,
    invalid_id,
    login_required,
    not_found,
    parse_positive_int,
    server_error,
)
from idealab.brainwriting import (
    get_brainwriting_by_id,
    get_brainwriting_by_id_internal,
    get_brainwritings_by_user_id,
    get_usage_scope_label,
    is_brainwriting_user,
)
from idealab.db import (
    get_user_by_email,
    get_user_by_id,
    insert_user,
    update_user,
    update_user_image,
)
from idealab.events import NAMESPACES, get_channel, stream_channel
from idealab.idea import get_idea_categories_by_user_id
from idealab.mandalart import get_mandalart_by_id, get_mandalarts_by_user_id
from idealab.osborn_checklist import get_osborn_checklist_by_id, get_osborn_checklists_by_user_id
import logging
import os
import uuid
from urllib.parse import urlparse

import cloudinary.uploader
from werkzeug.security import generate_password_hash, check_password_hash
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

ALLOWED_ICON_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif'}
MAX_NAME_LENGTH = 100
MIN_PASSWORD_LENGTH = 8


def store_icon_file(icon_file, extension):
    if app.config.get('USE_CLOUDINARY'):
        icon_file.stream.seek(0)
        upload_options = {'resource_type': 'image'}
        folder = os.environ.get('CLOUDINARY_UPLOAD_FOLDER')
        if folder:
            upload_options['folder'] = folder
        upload_result = cloudinary.uploader.upload(icon_file, **upload_options)
        return upload_result.get('secure_url')

    uploads_dir = app.config['UPLOAD_FOLDER']
    os.makedirs(uploads_dir, exist_ok=True)
    stored_filename = f"{uuid.uuid4().hex}{extension}"
    save_path = os.path.join(uploads_dir, stored_filename)
    icon_file.stream.seek(0)
    icon_file.save(save_path)
    return os.path.join('uploads', stored_filename)


def delete_icon_file(icon_path):
    if not icon_path:
        return
    if icon_path.startswith('http'):
        if app.config.get('USE_CLOUDINARY'):
            public_id = _extract_public_id(icon_path)
            if public_id:
                cloudinary.uploader.destroy(public_id, invalidate=True)
        return
    if icon_path.startswith('uploads/'):
        filename = icon_path.split('/', 1)[1]
        absolute_path = os.path.join(app.config['UPLOAD_FOLDER'], filename)
        if os.path.exists(absolute_path):
            os.remove(absolute_path)


def _extract_public_id(url: str) -> str | None:
    parsed = urlparse(url)
    path_parts = parsed.path.strip('/').split('/')
    try:
        upload_index = path_parts.index('upload')
    except ValueError:
        return None
    public_parts = path_parts[upload_index + 1 :]
    if public_parts and public_parts[0].startswith('v') and public_parts[0][1:].isdigit():
        public_parts = public_parts[1:]
    if not public_parts:
        return None
    public_id_with_ext = '/'.join(public_parts)
    public_id, _ = os.path.splitext(public_id_with_ext)
    return public_id or None


def _validate_icon(icon_file, errors):
    if not icon_file or not icon_file.filename:
        return None
    filename = secure_filename(icon_file.filename)
    _, ext = os.path.splitext(filename)
    if ext.lower() not in ALLOWED_ICON_EXTENSIONS:
        errors.append('アイコン画像はPNG/JPG/GIF形式のみアップロードできます。')
        return None
    return (icon_file, ext.lower())


def _safe_next_url(next_url):
    """同一サイト内のパスのみ許可する"""
    if not next_url or not next_url.startswith('/'):
        return None
    # ブラウザは /\ を // と同じく別ホストとして解釈する
    if next_url.startswith(('//', '/\\')):
        return None
    parsed = urlparse(next_url)
    if parsed.netloc and parsed.netloc != request.host:
        return None
    return next_url


@app.context_processor
def inject_current_user():
    return dict(
        current_user_name=session.get('user_name'),
        current_user_image=session.get('user_image'),
    )


@app.template_filter('usage_scope_label')
def usage_scope_label_filter(value):
    return get_usage_scope_label(value)


@app.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(app.config['UPLOAD_FOLDER'], filename)


@app.route('/')
@login_required
def index():
    user_id = session['user_id']
    return render_template(
        'index.html',
        brainwritings=get_brainwritings_by_user_id(user_id),
        mandalarts=get_mandalarts_by_user_id(user_id),
        osborn_checklists=get_osborn_checklists_by_user_id(user_id),
        categories=get_idea_categories_by_user_id(user_id),
    )


@app.route('/signup', methods=['GET', 'POST'])
def signup():
    errors = []

    form_data = {
        'name': request.form.get('name', '').strip() if request.method == 'POST' else '',
        'email': request.form.get('email', '').strip() if request.method == 'POST' else '',
    }

    if request.method == 'POST':
        name = form_data['name']
        email = form_data['email']
        password = request.form.get('password', '')
        confirm_password = request.form.get('confirm_password', '')

        if not name:
            errors.append('名前は必須です')
        elif len(name) > MAX_NAME_LENGTH:
            errors.append('名前は100文字以内で入力してください')

        if not email:
            errors.append('メールアドレスを入力してください。')
        elif '@' not in email or '.' not in email:
            errors.append('正しい形式のメールアドレスを入力してください。')

        if not password:
            errors.append('パスワードを入力してください。')
        elif len(password) < MIN_PASSWORD_LENGTH:
            errors.append('パスワードは8文字以上で入力してください。')
        elif password != confirm_password:
            errors.append('パスワードと確認用パスワードが一致しません。')

        if email and get_user_by_email(email):
            errors.append('このメールアドレスは既に登録されています。')

        icon_candidate = _validate_icon(request.files.get('icon'), errors)

        if not errors:
            image = None
            if icon_candidate:
                icon_stream, ext = icon_candidate
                image = store_icon_file(icon_stream, ext)

            user_id = insert_user(name, email, generate_password_hash(password), image)
            logger.info("New user registered: %s", user_id)
            session.clear()
            session.permanent = True
            session['user_id'] = user_id
            session['user_name'] = name
            session['user_image'] = image
            return redirect(url_for('index'))

    return render_template('signup.html', errors=errors, form_data=form_data)


@app.route('/login', methods=['GET', 'POST'])
def login():
    errors = []
    form_data = {
        'email': request.form.get('email', '').strip() if request.method == 'POST' else ''
    }

    next_url = request.args.get('next') or request.form.get('next')

    if request.method == 'POST':
        email = form_data['email']
        password = request.form.get('password', '')

        if not email:
            errors.append('メールアドレスを入力してください。')
        if not password:
            errors.append('パスワードを入力してください。')

        user_row = None
        if email and not errors:
            user_row = get_user_by_email(email)
            if not user_row or not check_password_hash(user_row[3], password):
                errors.append('メールアドレスまたはパスワードが正しくありません。')

        if not errors and user_row:
            session.clear()
            session.permanent = True
            session['user_id'] = user_row[0]
            session['user_name'] = user_row[1]
            session['user_image'] = user_row[4]

            safe_next = _safe_next_url(next_url)
            if safe_next:
                return redirect(safe_next)
            return redirect(url_for('index'))

    return render_template('login.html', errors=errors, form_data=form_data, next_url=next_url)


@app.route('/logout', methods=['POST'])
@login_required
def logout():
    session.clear()
    return redirect(url_for('login'))


@app.route('/mypage')
@login_required
def mypage():
    user = get_user_by_id(session['user_id'])
    if not user:
        session.clear()
        return redirect(url_for('login'))
    return render_template('mypage.html', user=user)


@app.route('/mypage/update', methods=['POST'])
@login_required
def update_profile():
    user_id = session['user_id']
    user = get_user_by_id(user_id)
    if not user:
        session.clear()
        return redirect(url_for('login'))

    errors = []
    name = request.form.get('name', '').strip()
    if not name:
        errors.append('名前は必須です')
    elif len(name) > MAX_NAME_LENGTH:
        errors.append('名前は100文字以内で入力してください')

    icon_candidate = _validate_icon(request.files.get('icon'), errors)

    if errors:
        for message in errors:
            flash(message)
        return redirect(url_for('mypage'))

    update_user(user_id, name)
    session['user_name'] = name

    if icon_candidate:
        icon_stream, ext = icon_candidate
        new_image = store_icon_file(icon_stream, ext)
        update_user_image(user_id, new_image)
        try:
            delete_icon_file(user['image'])
        except Exception as e:
            logger.warning("古いアイコンの削除に失敗しました: %s", e)
        session['user_image'] = new_image

    flash('プロフィールを更新しました。')
    return redirect(url_for('mypage'))


def _can_subscribe(namespace, target_id, user_id):
    """RESTで閲覧できる相手にだけイベントを配信する"""
    if namespace == NAMESPACES['BRAINWRITING']:
        return (
            get_brainwriting_by_id(target_id, user_id) is not None
            or is_brainwriting_user(target_id, user_id)
        )
    if namespace == NAMESPACES['MANDALART']:
        return get_mandalart_by_id(target_id, user_id) is not None
    return get_osborn_checklist_by_id(target_id, user_id) is not None


@app.route('/api/events/<namespace>/<target_id>')
@api_login_required
def stream_events(namespace, target_id):
    """指定チャンネルのイベントを Server-Sent Events で配信"""
    if namespace not in NAMESPACES.values():
        return bad_request('名前空間が無効です')
    parsed_id = parse_positive_int(target_id)
    if parsed_id is None:
        return invalid_id()

    user_id = get_current_user_id()
    try:
        if namespace == NAMESPACES['BRAINWRITING'] and not get_brainwriting_by_id_internal(parsed_id):
            return not_found('ブレインライティング')
        if not _can_subscribe(namespace, parsed_id, user_id):
            return forbidden()
    except Exception as e:
        logger.error(f"イベント購読の権限確認エラー: {e}", exc_info=True)
        return server_error()

    channel = get_channel(namespace, parsed_id)
    logger.debug("SSE subscribe %s by %s", channel, user_id)
    return Response(
        stream_with_context(stream_channel(channel)),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        },
    )


def _wants_json():
    return request.path.startswith('/api/')


@app.errorhandler(404)
def handle_not_found(error):
    if _wants_json():
        return not_found('リソース')
    return render_template('error.html', status=404, message='ページが見つかりません'), 404


@app.errorhandler(500)
def handle_server_error(error):
    logger.error("Unhandled server error: %s", error)
    if _wants_json():
        return server_error()
    return render_template('error.html', status=500, message='サーバーエラーが発生しました'), 500
