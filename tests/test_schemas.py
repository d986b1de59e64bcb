"""APIリクエストのバリデーションを検証"""
import unittest

from pydantic import ValidationError

from idealab.schemas import (
    BrainwritingForm,
    BrainwritingInputForm,
    IdeaForm,
    MandalartInputForm,
    OsbornChecklistInputForm,
    first_error_message,
    validation_details,
)


class TestBrainwritingForm(unittest.TestCase):

    def test_accepts_camel_case_fields(self):
        form = BrainwritingForm.model_validate({
            'title': '朝会のアイデア',
            'themeName': '朝会',
            'description': None,
            'usageScope': 'team',
        })
        self.assertEqual(form.theme_name, '朝会')
        self.assertEqual(form.usage_scope, 'team')
        self.assertIsNone(form.description)

    def test_missing_title_reports_japanese_message(self):
        with self.assertRaises(ValidationError) as ctx:
            BrainwritingForm.model_validate({'themeName': '朝会', 'usageScope': 'xpost'})
        self.assertEqual(first_error_message(ctx.exception), 'タイトルは必須です')

    def test_length_limits(self):
        """タイトル100文字・テーマ50文字・説明500文字が上限"""
        base = {'title': 'a' * 100, 'themeName': 'b' * 50, 'description': 'c' * 500, 'usageScope': 'xpost'}
        BrainwritingForm.model_validate(base)

        cases = {
            'title': ('a' * 101, 'タイトルは100文字以内で入力してください'),
            'themeName': ('b' * 51, 'テーマは50文字以内で入力してください'),
            'description': ('c' * 501, '説明は500文字以内で入力してください'),
        }
        for field, (value, message) in cases.items():
            with self.subTest(field=field):
                with self.assertRaises(ValidationError) as ctx:
                    BrainwritingForm.model_validate({**base, field: value})
                self.assertEqual(first_error_message(ctx.exception), message)

    def test_unknown_usage_scope(self):
        with self.assertRaises(ValidationError) as ctx:
            BrainwritingForm.model_validate({'title': 't', 'themeName': 'x', 'usageScope': 'public'})
        details = validation_details(ctx.exception)
        self.assertEqual(details[0]['message'], '利用方法を選択してください')


class TestInputForms(unittest.TestCase):

    def test_brainwriting_input_index_range(self):
        valid = {'brainwritingId': 1, 'brainwritingSheetId': 2, 'rowIndex': 5, 'columnIndex': 2, 'content': 'x'}
        BrainwritingInputForm.model_validate(valid)
        for field, value in (('rowIndex', 6), ('columnIndex', 3), ('rowIndex', -1)):
            with self.subTest(field=field, value=value):
                with self.assertRaises(ValidationError):
                    BrainwritingInputForm.model_validate({**valid, field: value})

    def test_brainwriting_input_content_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            BrainwritingInputForm.model_validate({
                'brainwritingId': 1, 'brainwritingSheetId': 1, 'rowIndex': 0, 'columnIndex': 0,
                'content': 'あ' * 101,
            })
        self.assertEqual(first_error_message(ctx.exception), 'アイデアは100文字以内で入力してください')

    def test_mandalart_input_requires_all_indices(self):
        with self.assertRaises(ValidationError):
            MandalartInputForm.model_validate({'mandalartId': 1, 'sectionRowIndex': 0, 'rowIndex': 0, 'columnIndex': 0})

    def test_osborn_input_allows_long_content(self):
        form = OsbornChecklistInputForm.model_validate({
            'osbornChecklistId': 1, 'checklistType': 'reverse', 'content': 'あ' * 1000,
        })
        self.assertEqual(len(form.content), 1000)


class TestIdeaForm(unittest.TestCase):

    def test_priority_defaults_to_medium(self):
        self.assertEqual(IdeaForm.model_validate({'name': 'アイデア'}).priority, 'medium')
        self.assertEqual(IdeaForm.model_validate({'name': 'アイデア', 'priority': None}).priority, 'medium')

    def test_invalid_priority(self):
        with self.assertRaises(ValidationError) as ctx:
            IdeaForm.model_validate({'name': 'アイデア', 'priority': 'urgent'})
        self.assertEqual(first_error_message(ctx.exception), '優先度を選択してください')

    def test_validation_details_paths(self):
        with self.assertRaises(ValidationError) as ctx:
            IdeaForm.model_validate({'name': '', 'description': 'x' * 1001})
        paths = {item['path'] for item in validation_details(ctx.exception)}
        self.assertEqual(paths, {'name', 'description'})


if __name__ == '__main__':
    unittest.main()
