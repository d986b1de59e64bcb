"""
テスト共通のセットアップ

一時ディレクトリの SQLite データベースに切り替えてテーブルを作成する。
"""
import os
import tempfile
import unittest
import uuid
from datetime import timedelta
from unittest.mock import patch

from idealab import app, db
from idealab.db import create_table, get_connection, insert_user, now_jst


def expire_sheet_lock(sheet_id):
    """シートのロック期限を1分前にする"""
    expired = (now_jst() - timedelta(minutes=1)).strftime('%Y-%m-%d %H:%M:%S')
    with get_connection() as con:
        con.execute("UPDATE brainwriting_sheets SET lock_expires_at = ? WHERE id = ?", (expired, sheet_id))
        con.commit()


class DatabaseTestCase(unittest.TestCase):
    """一時データベースを使うテストの基底クラス"""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        database_path = os.path.join(self._tmpdir.name, 'test.db')
        for patcher in (
            patch.object(db, 'DATABASE', database_path),
            patch.object(db, 'USE_SUPABASE', False),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)
        self.addCleanup(self._tmpdir.cleanup)
        create_table()

    def create_user(self, name='テストユーザー', email=None):
        email = email or f'{uuid.uuid4().hex}@example.com'
        return insert_user(name, email, 'hashed-password')


class ApiTestCase(DatabaseTestCase):
    """Flask テストクライアントでAPIを呼び出すテストの基底クラス"""

    def setUp(self):
        super().setUp()
        app.config['TESTING'] = True
        self.client = app.test_client()
        # イベント配信は各テストで必要に応じて検証する
        patcher = patch('idealab.events.APPSYNC_EVENTS_URL', None)
        patcher.start()
        self.addCleanup(patcher.stop)

    def login(self, user_id, name='テストユーザー'):
        with self.client.session_transaction() as sess:
            sess['user_id'] = user_id
            sess['user_name'] = name
            sess['user_image'] = None
