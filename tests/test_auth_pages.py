"""サインアップ・ログイン・マイページとエラーハンドラを検証"""
import unittest
from urllib.parse import parse_qs, urlparse

from idealab.db import get_user_by_email

from tests.support import ApiTestCase


class TestAuthPages(ApiTestCase):

    def _signup(self, **overrides):
        data = {
            'name': '花子',
            'email': 'hanako@example.com',
            'password': 'password123',
            'confirm_password': 'password123',
        }
        data.update(overrides)
        return self.client.post('/signup', data=data)

    def test_signup_logs_in(self):
        response = self._signup()
        self.assertEqual(response.status_code, 302)
        user_row = get_user_by_email('hanako@example.com')
        self.assertIsNotNone(user_row)
        with self.client.session_transaction() as sess:
            self.assertEqual(sess['user_id'], user_row[0])

        index = self.client.get('/')
        self.assertEqual(index.status_code, 200)
        self.assertIn('アイデア研究所', index.get_data(as_text=True))

    def test_signup_errors(self):
        response = self._signup(confirm_password='different1')
        self.assertEqual(response.status_code, 200)
        self.assertIn('パスワードと確認用パスワードが一致しません。', response.get_data(as_text=True))
        self.assertIsNone(get_user_by_email('hanako@example.com'))

    def test_duplicate_email(self):
        self._signup()
        self.client.post('/logout')
        response = self._signup()
        self.assertIn('このメールアドレスは既に登録されています。', response.get_data(as_text=True))

    def test_login_and_next(self):
        self._signup()
        self.client.post('/logout')

        failed = self.client.post('/login', data={'email': 'hanako@example.com', 'password': 'wrong-pass'})
        self.assertIn('メールアドレスまたはパスワードが正しくありません。', failed.get_data(as_text=True))

        response = self.client.post(
            '/login?next=/mypage', data={'email': 'hanako@example.com', 'password': 'password123'}
        )
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers['Location'].endswith('/mypage'))

    def test_external_next_is_ignored(self):
        self._signup()
        self.client.post('/logout')
        response = self.client.post(
            '/login?next=https://evil.example.com/', data={'email': 'hanako@example.com', 'password': 'password123'}
        )
        self.assertNotIn('evil.example.com', response.headers['Location'])

    def test_backslash_next_is_ignored(self):
        """/\\ で始まる next は別ホスト扱いになるため使わない"""
        self._signup()
        self.client.post('/logout')
        for next_url in ('/\\evil.example.com', '//evil.example.com', 'javascript:alert(1)'):
            response = self.client.post(
                '/login', data={'email': 'hanako@example.com', 'password': 'password123', 'next': next_url}
            )
            self.assertEqual(response.status_code, 302)
            self.assertNotIn('evil.example.com', response.headers['Location'])
            self.assertNotIn('javascript', response.headers['Location'])

    def test_index_redirects_when_logged_out(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 302)
        self.assertIn('/login', response.headers['Location'])
        query = parse_qs(urlparse(response.headers['Location']).query)
        self.assertEqual(query['next'], ['/'])

    def test_mypage_update(self):
        self._signup()
        response = self.client.post('/mypage/update', data={'name': '花子2'}, follow_redirects=True)
        self.assertIn('プロフィールを更新しました。', response.get_data(as_text=True))
        self.assertEqual(get_user_by_email('hanako@example.com')[1], '花子2')

    def test_api_404_is_json(self):
        response = self.client.get('/api/does-not-exist')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json(), {'error': 'リソースが見つかりません'})

    def test_page_404_is_html(self):
        response = self.client.get('/does-not-exist')
        self.assertEqual(response.status_code, 404)
        self.assertIn('ページが見つかりません', response.get_data(as_text=True))

    def test_event_stream_rejects_unknown_namespace(self):
        self._signup()
        response = self.client.get('/api/events/unknown/1')
        self.assertEqual(response.status_code, 400)

    def test_event_stream_requires_access(self):
        """閲覧権限のない対象のイベントは購読できない"""
        owner = self.create_user('作成者')
        self.login(owner, '作成者')
        brainwriting = self.client.post('/api/brainwritings', json={
            'title': 'タイトル', 'themeName': 'テーマ', 'usageScope': 'team',
        }).get_json()
        mandalart = self.client.post('/api/mandalarts', json={'title': 'タイトル', 'themeName': 'テーマ'}).get_json()

        self._signup()
        self.assertEqual(self.client.get(f"/api/events/brainwriting/{brainwriting['id']}").status_code, 403)
        self.assertEqual(self.client.get(f"/api/events/mandalart/{mandalart['id']}").status_code, 403)
        self.assertEqual(self.client.get('/api/events/osborn/999').status_code, 403)
        self.assertEqual(self.client.get('/api/events/brainwriting/999').status_code, 404)


if __name__ == '__main__':
    unittest.main()
