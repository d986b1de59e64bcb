"""ブレインライティングAPIを Flask テストクライアントで検証"""
import unittest
from unittest.mock import patch

from idealab.brainwriting import (
    get_brainwriting_sheet_by_id,
    get_brainwriting_sheets_by_brainwriting_id,
    is_brainwriting_user,
)

from tests.support import ApiTestCase, expire_sheet_lock


def _form(usage_scope='xpost', **overrides):
    body = {
        'title': '新商品アイデア',
        'themeName': 'お弁当',
        'description': '自由に',
        'usageScope': usage_scope,
    }
    body.update(overrides)
    return body


class TestBrainwritingApi(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.create_user('作成者')
        self.guest = self.create_user('ゲスト')
        self.login(self.owner, '作成者')

    def _create(self, usage_scope='xpost'):
        response = self.client.post('/api/brainwritings', json=_form(usage_scope))
        self.assertEqual(response.status_code, 201)
        return response.get_json()

    def test_requires_login(self):
        with self.client.session_transaction() as sess:
            sess.clear()
        response = self.client.get('/api/brainwritings')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json(), {'error': '認証が必要です'})

    def test_create_validation_error(self):
        response = self.client.post('/api/brainwritings', json=_form(title=''))
        self.assertEqual(response.status_code, 400)
        body = response.get_json()
        self.assertEqual(body['error'], '入力データが無効です')
        self.assertEqual(body['details'][0]['message'], 'タイトルは必須です')

    def test_create_list_get(self):
        created = self._create()
        self.assertIn('inviteUrl', created)

        listed = self.client.get('/api/brainwritings').get_json()
        self.assertEqual([bw['id'] for bw in listed], [created['id']])

        detail = self.client.get(f"/api/brainwritings/{created['id']}").get_json()
        self.assertEqual(len(detail['sheets']), 1)
        self.assertEqual(detail['users'][0]['user_id'], self.owner)

    def test_invalid_and_unknown_ids(self):
        self.assertEqual(self.client.get('/api/brainwritings/abc').status_code, 400)
        self.assertEqual(self.client.get('/api/brainwritings/0').status_code, 400)
        response = self.client.get('/api/brainwritings/999')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['error'], 'ブレインライティングが見つかりません')

    def test_update_and_delete_by_owner_only(self):
        created = self._create()
        self.login(self.guest, 'ゲスト')
        self.assertEqual(self.client.put(f"/api/brainwritings/{created['id']}", json=_form()).status_code, 404)
        self.assertEqual(self.client.delete(f"/api/brainwritings/{created['id']}").status_code, 404)

        self.login(self.owner, '作成者')
        updated = self.client.put(f"/api/brainwritings/{created['id']}", json=_form(title='改題')).get_json()
        self.assertEqual(updated['title'], '改題')
        self.assertEqual(self.client.delete(f"/api/brainwritings/{created['id']}").get_json(), {'success': True})

    def test_x_post(self):
        created = self._create()
        body = self.client.get(f"/api/brainwritings/{created['id']}/x-post").get_json()
        self.assertIn(created['invite_token'], body['content'])
        self.assertTrue(body['url'].startswith('https://twitter.com/intent/tweet'))

    def test_invite_lookup(self):
        created = self._create()
        body = self.client.get(f"/api/brainwritings/invite/{created['invite_token']}").get_json()
        self.assertEqual(body['id'], created['id'])
        self.assertEqual(body['themeName'], 'お弁当')
        self.assertTrue(body['isInviteActive'])
        self.assertEqual(self.client.get('/api/brainwritings/invite/unknown').status_code, 404)

    def test_xpost_join_input_and_complete(self):
        created = self._create()
        sheet_id = get_brainwriting_sheets_by_brainwriting_id(created['id'])[0]['id']

        self.login(self.guest, 'ゲスト')
        with patch('idealab.main_brainwriting.publish_brainwriting_event') as publish:
            response = self.client.post('/api/brainwritings/join', json={'brainwritingId': created['id']})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()['sheetId'], sheet_id)
        publish.assert_called_once_with(created['id'], 'USER_JOINED')

        status = self.client.get(f"/api/brainwritings/{created['id']}/join-status").get_json()
        self.assertTrue(status['isJoined'])
        self.assertFalse(status['isLocked'])
        self.assertEqual(status['currentCount'], 2)

        response = self.client.post('/api/brainwritings/input', json={
            'brainwritingId': created['id'],
            'brainwritingSheetId': sheet_id,
            'rowIndex': 1,
            'columnIndex': 0,
            'content': '唐揚げ増量',
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['content'], '唐揚げ増量')

        inputs = self.client.get(f'/api/brainwritings/sheets/{sheet_id}/inputs').get_json()
        self.assertIn('唐揚げ増量', [i['content'] for i in inputs])

        self.assertEqual(self.client.post(f'/api/brainwritings/sheets/{sheet_id}/complete').get_json(), {'success': True})
        self.assertIsNone(get_brainwriting_sheet_by_id(sheet_id)['current_user_id'])

    def test_join_status_clears_abandoned_session(self):
        """参加状況の取得時に、放置された担当者のロックと参加が外れる"""
        created = self._create()
        sheet_id = get_brainwriting_sheets_by_brainwriting_id(created['id'])[0]['id']
        self.login(self.guest, 'ゲスト')
        self.client.post('/api/brainwritings/join', json={'brainwritingId': created['id']})
        expire_sheet_lock(sheet_id)

        self.login(self.owner, '作成者')
        status = self.client.get(f"/api/brainwritings/{created['id']}/join-status").get_json()
        self.assertFalse(status['isLocked'])
        self.assertEqual(status['currentCount'], 1)
        self.assertFalse(is_brainwriting_user(created['id'], self.guest))
        self.assertIsNone(get_brainwriting_sheet_by_id(sheet_id)['current_user_id'])

    def test_join_rejects_non_integer_id(self):
        created = self._create()
        self.login(self.guest, 'ゲスト')
        for value in (True, 1.5, 'abc'):
            response = self.client.post('/api/brainwritings/join', json={'brainwritingId': value})
            self.assertEqual(response.status_code, 400)
        self.assertFalse(is_brainwriting_user(created['id'], self.guest))

    def test_input_requires_sheet_holder(self):
        created = self._create()
        sheet_id = get_brainwriting_sheets_by_brainwriting_id(created['id'])[0]['id']
        self.login(self.guest, 'ゲスト')
        self.client.post('/api/brainwritings/join', json={'brainwritingId': created['id']})

        self.login(self.owner, '作成者')
        response = self.client.post('/api/brainwritings/input', json={
            'brainwritingId': created['id'],
            'brainwritingSheetId': sheet_id,
            'rowIndex': 0,
            'columnIndex': 0,
            'content': '割り込み',
        })
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()['error'], 'このシートの担当ではありません')

    def test_join_with_inactive_invite(self):
        created = self._create()
        response = self.client.patch(
            f"/api/brainwritings/{created['id']}/invite-active", json={'isInviteActive': False}
        )
        self.assertFalse(response.get_json()['is_invite_active'])

        self.login(self.guest, 'ゲスト')
        response = self.client.post('/api/brainwritings/join', json={'brainwritingId': created['id']})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()['error'], '招待URLは無効になっています')

    def test_duplicate_join(self):
        created = self._create()
        response = self.client.post('/api/brainwritings/join', json={'brainwritingId': created['id']})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], '既に参加しています')

    def test_patch_flag_requires_boolean(self):
        created = self._create()
        response = self.client.patch(f"/api/brainwritings/{created['id']}/results-public", json={'isResultsPublic': 'yes'})
        self.assertEqual(response.status_code, 400)

    def test_team_start_and_rotate(self):
        created = self._create('team')
        self.login(self.guest, 'ゲスト')
        self.client.post('/api/brainwritings/join', json={'brainwritingId': created['id']})

        with patch('idealab.main_brainwriting.publish_brainwriting_event') as publish:
            response = self.client.post(f"/api/brainwritings/{created['id']}/start")
        self.assertEqual(response.status_code, 200)
        sheet_ids = response.get_json()['sheetIds']
        self.assertEqual(len(sheet_ids), 2)
        publish.assert_called_once_with(created['id'], 'BRAINWRITING_STARTED')

        self.assertEqual(self.client.post(f"/api/brainwritings/{created['id']}/start").status_code, 409)

        team = self.client.get(f"/api/brainwritings/{created['id']}/team").get_json()
        self.assertEqual(len(team['sheets']), 2)

        guest_sheet = sheet_ids[1]
        with patch('idealab.main_brainwriting.publish_brainwriting_event') as publish:
            body = self.client.post(f'/api/brainwritings/sheets/{guest_sheet}/complete').get_json()
        self.assertEqual(body, {'success': True, 'nextUserId': self.owner})
        publish.assert_called_once_with(created['id'], 'SHEET_ROTATED')

    def test_start_rejected_for_xpost(self):
        created = self._create('xpost')
        response = self.client.post(f"/api/brainwritings/{created['id']}/start")
        self.assertEqual(response.status_code, 400)

    def test_outsider_cannot_view_sheets(self):
        created = self._create()
        self.login(self.guest, 'ゲスト')
        self.assertEqual(self.client.get(f"/api/brainwritings/{created['id']}/sheets").status_code, 403)
        self.assertEqual(self.client.get(f"/api/brainwritings/{created['id']}/team").status_code, 404)


class TestBrainwritingPages(ApiTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.create_user('作成者')
        self.login(self.owner, '作成者')
        self.created = self.client.post('/api/brainwritings', json=_form('xpost')).get_json()

    def test_detail_page_for_owner(self):
        response = self.client.get(f"/brainwritings/{self.created['id']}")
        self.assertEqual(response.status_code, 200)
        self.assertIn('新商品アイデア', response.get_data(as_text=True))

    def test_invite_page_requires_login(self):
        with self.client.session_transaction() as sess:
            sess.clear()
        response = self.client.get(f"/brainwritings/invite/{self.created['invite_token']}")
        self.assertEqual(response.status_code, 302)
        self.assertIn('/login', response.headers['Location'])

    def test_results_page_only_when_public(self):
        self.assertEqual(self.client.get(f"/brainwritings/{self.created['id']}/results").status_code, 404)
        self.client.patch(f"/api/brainwritings/{self.created['id']}/results-public", json={'isResultsPublic': True})
        response = self.client.get(f"/brainwritings/{self.created['id']}/results")
        self.assertEqual(response.status_code, 200)
        self.assertIn('参加者2', response.get_data(as_text=True))


if __name__ == '__main__':
    unittest.main()
