import logging
import os
import secrets

import cloudinary
from dotenv import load_dotenv
from flask import Flask

load_dotenv()

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
app.config['UPLOAD_FOLDER'] = os.environ.get(
    'UPLOAD_FOLDER',
    os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'uploads')),
)
app.config['MAX_CONTENT_LENGTH'] = 5 * 1024 * 1024
app.config['USE_CLOUDINARY'] = (
    os.environ.get('USE_CLOUDINARY', '').lower() == 'true'
    or bool(os.environ.get('CLOUDINARY_URL'))
)
app.json.ensure_ascii = False

if app.config['USE_CLOUDINARY']:
    # CLOUDINARY_URL は SDK が環境変数から読み込む
    cloudinary.config(secure=True)

import idealab.main  # noqa: E402,F401
import idealab.main_ideas  # noqa: E402,F401
import idealab.main_brainwriting  # noqa: E402,F401
import idealab.main_frameworks  # noqa: E402,F401
