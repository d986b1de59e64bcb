"""ブレインライティングの参加・ロック・ローテーションを検証"""
import unittest

from idealab.brainwriting import (
    MAX_USERS,
    BrainwritingError,
    check_join_status,
    check_sheet_lock_status,
    check_team_joinable,
    check_user_count,
    clear_abandoned_sessions,
    create_brainwriting,
    create_sheets_for_team,
    delete_brainwriting,
    get_brainwriting_by_token,
    get_brainwriting_detail_by_id,
    get_brainwriting_detail_for_brainwriting_user,
    get_brainwriting_inputs_by_sheet_id,
    get_brainwriting_results_by_id,
    get_brainwriting_sheet_by_id,
    get_brainwriting_sheets_by_brainwriting_id,
    get_brainwriting_team_by_brainwriting_id,
    get_brainwriting_users_by_brainwriting_id,
    is_brainwriting_user,
    join_brainwriting,
    rotate_sheet_to_next_user,
    unlock_sheet,
    update_brainwriting_is_results_public,
    upsert_brainwriting_input,
)

from tests.support import DatabaseTestCase, expire_sheet_lock


class TestCreateBrainwriting(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.create_user('作成者')

    def test_xpost_creates_sheet_held_by_owner(self):
        """X投稿では作成時にシート1枚と作成者の1行目が用意される"""
        bw = create_brainwriting(self.owner, 'タイトル', 'テーマ', None, 'xpost')

        self.assertIn('/brainwritings/invite/', bw['inviteUrl'])
        self.assertTrue(bw['is_invite_active'])
        self.assertFalse(bw['is_results_public'])
        self.assertTrue(is_brainwriting_user(bw['id'], self.owner))

        sheets = get_brainwriting_sheets_by_brainwriting_id(bw['id'])
        self.assertEqual(len(sheets), 1)
        self.assertEqual(sheets[0]['current_user_id'], self.owner)
        self.assertIsNone(sheets[0]['lock_expires_at'])

        inputs = get_brainwriting_inputs_by_sheet_id(sheets[0]['id'])
        self.assertEqual([(i['row_index'], i['column_index']) for i in inputs], [(0, 0), (0, 1), (0, 2)])
        self.assertTrue(all(i['content'] is None for i in inputs))
        self.assertEqual(inputs[0]['input_user_name'], '作成者')

    def test_team_has_no_sheets_until_start(self):
        bw = create_brainwriting(self.owner, 'タイトル', 'テーマ', '説明', 'team')
        self.assertEqual(get_brainwriting_sheets_by_brainwriting_id(bw['id']), [])
        self.assertEqual(get_brainwriting_by_token(bw['invite_token'])['id'], bw['id'])

    def test_delete_cascades_to_children(self):
        bw = create_brainwriting(self.owner, 'タイトル', 'テーマ', None, 'xpost')
        sheet_id = get_brainwriting_sheets_by_brainwriting_id(bw['id'])[0]['id']

        self.assertIsNone(delete_brainwriting(bw['id'], 'someone-else'))
        self.assertIsNotNone(delete_brainwriting(bw['id'], self.owner))

        self.assertIsNone(get_brainwriting_sheet_by_id(sheet_id))
        self.assertEqual(get_brainwriting_inputs_by_sheet_id(sheet_id), [])
        self.assertEqual(get_brainwriting_users_by_brainwriting_id(bw['id']), [])


class TestXPostJoin(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.create_user('作成者')
        self.bw = create_brainwriting(self.owner, 'タイトル', 'テーマ', None, 'xpost')
        self.sheet_id = get_brainwriting_sheets_by_brainwriting_id(self.bw['id'])[0]['id']

    def test_join_locks_sheet_and_adds_row(self):
        guest = self.create_user('ゲスト')
        result = join_brainwriting(self.bw['id'], guest, 'xpost')

        self.assertEqual(result['sheetId'], self.sheet_id)
        self.assertEqual(result['data']['user_id'], guest)

        sheet = get_brainwriting_sheet_by_id(self.sheet_id)
        self.assertEqual(sheet['current_user_id'], guest)
        self.assertIsNotNone(sheet['lock_expires_at'])

        guest_rows = {
            i['row_index'] for i in get_brainwriting_inputs_by_sheet_id(self.sheet_id) if i['input_user_id'] == guest
        }
        self.assertEqual(guest_rows, {1})

    def test_second_join_while_locked_is_rejected(self):
        join_brainwriting(self.bw['id'], self.create_user('ゲスト1'), 'xpost')
        other = self.create_user('ゲスト2')

        self.assertTrue(check_sheet_lock_status(self.bw['id'], other)['isLocked'])
        with self.assertRaises(BrainwritingError) as ctx:
            join_brainwriting(self.bw['id'], other, 'xpost')
        self.assertEqual(ctx.exception.message, '他の方が編集中です')
        self.assertFalse(is_brainwriting_user(self.bw['id'], other))

    def test_duplicate_join_is_rejected(self):
        with self.assertRaises(BrainwritingError) as ctx:
            join_brainwriting(self.bw['id'], self.owner, 'xpost')
        self.assertEqual(ctx.exception.message, '既に参加しています')

    def test_join_rejected_when_full(self):
        for i in range(MAX_USERS - 1):
            guest = self.create_user(f'ゲスト{i}')
            join_brainwriting(self.bw['id'], guest, 'xpost')
            self.assertTrue(unlock_sheet(self.sheet_id, guest))

        self.assertTrue(check_user_count(self.bw['id'])['isFull'])
        with self.assertRaises(BrainwritingError) as ctx:
            join_brainwriting(self.bw['id'], self.create_user('7人目'), 'xpost')
        self.assertEqual(ctx.exception.message, '参加人数が上限に達しています')

    def test_unlock_only_by_holder(self):
        guest = self.create_user('ゲスト')
        join_brainwriting(self.bw['id'], guest, 'xpost')

        self.assertFalse(unlock_sheet(self.sheet_id, self.owner))
        self.assertTrue(unlock_sheet(self.sheet_id, guest))
        sheet = get_brainwriting_sheet_by_id(self.sheet_id)
        self.assertIsNone(sheet['current_user_id'])
        self.assertFalse(check_sheet_lock_status(self.bw['id'], self.owner)['isLocked'])

    def test_join_status(self):
        guest = self.create_user('ゲスト')
        self.assertFalse(check_join_status(self.bw['id'], guest)['isJoined'])
        join_brainwriting(self.bw['id'], guest, 'xpost')
        status = check_join_status(self.bw['id'], guest)
        self.assertTrue(status['isJoined'])
        self.assertEqual(status['joinData']['user_name'], 'ゲスト')
        self.assertEqual(status['sheetId'], self.sheet_id)


class TestClearAbandonedSessions(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.create_user('作成者')
        self.bw = create_brainwriting(self.owner, 'タイトル', 'テーマ', None, 'xpost')
        self.sheet_id = get_brainwriting_sheets_by_brainwriting_id(self.bw['id'])[0]['id']
        self.guest = self.create_user('ゲスト')
        join_brainwriting(self.bw['id'], self.guest, 'xpost')

    def test_active_lock_is_kept(self):
        self.assertEqual(clear_abandoned_sessions(self.bw['id']), 0)
        self.assertTrue(is_brainwriting_user(self.bw['id'], self.guest))

    def test_expired_lock_without_input_is_cleared(self):
        """期限切れかつ未入力の担当者は参加ごと取り消される"""
        expire_sheet_lock(self.sheet_id)

        self.assertEqual(clear_abandoned_sessions(self.bw['id']), 1)
        self.assertFalse(is_brainwriting_user(self.bw['id'], self.guest))
        self.assertIsNone(get_brainwriting_sheet_by_id(self.sheet_id)['current_user_id'])
        remaining = {i['input_user_id'] for i in get_brainwriting_inputs_by_sheet_id(self.sheet_id)}
        self.assertEqual(remaining, {self.owner})

    def test_expired_lock_with_input_is_kept(self):
        upsert_brainwriting_input(self.bw['id'], self.sheet_id, self.guest, 1, 0, 'アイデア')
        expire_sheet_lock(self.sheet_id)

        self.assertEqual(clear_abandoned_sessions(self.bw['id']), 0)
        self.assertTrue(is_brainwriting_user(self.bw['id'], self.guest))


class TestTeamFlow(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.owner = self.create_user('作成者')
        self.bw = create_brainwriting(self.owner, 'タイトル', 'テーマ', None, 'team')
        self.member1 = self.create_user('メンバー1')
        self.member2 = self.create_user('メンバー2')
        join_brainwriting(self.bw['id'], self.member1, 'team')
        join_brainwriting(self.bw['id'], self.member2, 'team')

    def test_start_creates_sheet_per_member(self):
        sheet_ids = create_sheets_for_team(self.bw['id'])
        self.assertEqual(len(sheet_ids), 3)
        holders = [get_brainwriting_sheet_by_id(sid)['current_user_id'] for sid in sheet_ids]
        self.assertEqual(holders, [self.owner, self.member1, self.member2])

    def test_join_after_start_is_rejected(self):
        create_sheets_for_team(self.bw['id'])
        latecomer = self.create_user('遅刻者')

        self.assertFalse(check_team_joinable(self.bw['id'], latecomer)['canJoin'])
        self.assertTrue(check_team_joinable(self.bw['id'], self.member1)['canJoin'])
        with self.assertRaises(BrainwritingError) as ctx:
            join_brainwriting(self.bw['id'], latecomer, 'team')
        self.assertEqual(ctx.exception.message, '参加できません')

    def test_rotation_follows_first_row_order(self):
        """メンバー1のシートはメンバー2、作成者の順に回り、最後は担当者なしになる"""
        sheet_ids = create_sheets_for_team(self.bw['id'])
        sheet_id = sheet_ids[1]

        self.assertEqual(rotate_sheet_to_next_user(sheet_id, self.member1)['nextUserId'], self.member2)
        self.assertEqual(rotate_sheet_to_next_user(sheet_id, self.member2)['nextUserId'], self.owner)
        self.assertIsNone(rotate_sheet_to_next_user(sheet_id, self.owner)['nextUserId'])
        self.assertIsNone(get_brainwriting_sheet_by_id(sheet_id)['current_user_id'])

    def test_rotation_rejects_unknown_user(self):
        sheet_id = create_sheets_for_team(self.bw['id'])[0]
        with self.assertRaises(BrainwritingError):
            rotate_sheet_to_next_user(sheet_id, 'not-a-member')
        with self.assertRaises(BrainwritingError) as ctx:
            rotate_sheet_to_next_user(9999, self.owner)
        self.assertEqual(ctx.exception.status, 404)

    def test_detail_views(self):
        sheet_ids = create_sheets_for_team(self.bw['id'])

        self.assertIsNone(get_brainwriting_detail_by_id(self.bw['id'], self.member1))
        owner_detail = get_brainwriting_detail_by_id(self.bw['id'], self.owner)
        self.assertEqual(len(owner_detail['sheets']), 3)
        self.assertEqual([u['user_name'] for u in owner_detail['users']], ['作成者', 'メンバー1', 'メンバー2'])

        team = get_brainwriting_team_by_brainwriting_id(self.bw['id'], self.member2)
        self.assertEqual(len(team['inputs']), 9)
        self.assertIsNone(get_brainwriting_team_by_brainwriting_id(self.bw['id'], 'outsider'))

        sheet_detail = get_brainwriting_detail_for_brainwriting_user(sheet_ids[0], self.member1)
        self.assertEqual([s['id'] for s in sheet_detail['sheets']], [sheet_ids[0]])
        self.assertEqual(len(sheet_detail['inputs']), 3)

    def test_results_only_when_public(self):
        self.assertIsNone(get_brainwriting_results_by_id(self.bw['id']))
        update_brainwriting_is_results_public(self.bw['id'], self.owner, True)
        self.assertEqual(get_brainwriting_results_by_id(self.bw['id'])['id'], self.bw['id'])


class TestUpsertInput(DatabaseTestCase):

    def test_blank_content_is_stored_as_null(self):
        owner = self.create_user('作成者')
        bw = create_brainwriting(owner, 'タイトル', 'テーマ', None, 'xpost')
        sheet_id = get_brainwriting_sheets_by_brainwriting_id(bw['id'])[0]['id']

        saved = upsert_brainwriting_input(bw['id'], sheet_id, owner, 0, 1, 'アイデア')
        self.assertEqual(saved['content'], 'アイデア')
        cleared = upsert_brainwriting_input(bw['id'], sheet_id, owner, 0, 1, '   ')
        self.assertIsNone(cleared['content'])
        self.assertEqual(saved['id'], cleared['id'])

        created = upsert_brainwriting_input(bw['id'], sheet_id, owner, 2, 0, '新しい行')
        self.assertEqual(created['row_index'], 2)
        self.assertEqual(len(get_brainwriting_inputs_by_sheet_id(sheet_id)), 4)


if __name__ == '__main__':
    unittest.main()
