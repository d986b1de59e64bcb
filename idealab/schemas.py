"""
Pydanticモデル（APIリクエストのバリデーション用）
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

USAGE_SCOPES = ('xpost', 'team')
PRIORITIES = ('high', 'medium', 'low')


def _text(value, required_message: str, max_length: int, max_message: str, required: bool = True):
    if value is None:
        value = ''
    if not isinstance(value, str):
        raise PydanticCustomError('string_type', '文字列で入力してください')
    if required and len(value) < 1:
        raise PydanticCustomError('required', required_message)
    if len(value) > max_length:
        raise PydanticCustomError('too_long', max_message)
    return value


def _optional_text(value, max_length: int, max_message: str):
    if value is None:
        return None
    return _text(value, '', max_length, max_message, required=False)


class _RequestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BaseIdeaForm(_RequestModel):
    """アイデアフレームワーク共通のフォーム"""
    title: str = Field(default='', validate_default=True)
    theme_name: str = Field(default='', alias='themeName', validate_default=True)
    description: Optional[str] = None

    @field_validator('title', mode='before')
    @classmethod
    def _check_title(cls, value):
        return _text(value, 'タイトルは必須です', 100, 'タイトルは100文字以内で入力してください')

    @field_validator('theme_name', mode='before')
    @classmethod
    def _check_theme_name(cls, value):
        return _text(value, 'テーマは必須です', 50, 'テーマは50文字以内で入力してください')

    @field_validator('description', mode='before')
    @classmethod
    def _check_description(cls, value):
        return _optional_text(value, 500, '説明は500文字以内で入力してください')


class BrainwritingForm(BaseIdeaForm):
    usage_scope: str = Field(default='', alias='usageScope', validate_default=True)

    @field_validator('usage_scope', mode='before')
    @classmethod
    def _check_usage_scope(cls, value):
        if value not in USAGE_SCOPES:
            raise PydanticCustomError('enum', '利用方法を選択してください')
        return value


class MandalartForm(BaseIdeaForm):
    pass


class OsbornChecklistForm(BaseIdeaForm):
    pass


class BrainwritingInputForm(_RequestModel):
    brainwriting_id: int = Field(alias='brainwritingId')
    brainwriting_sheet_id: int = Field(alias='brainwritingSheetId')
    row_index: int = Field(alias='rowIndex', ge=0, le=5)
    column_index: int = Field(alias='columnIndex', ge=0, le=2)
    content: Optional[str] = None

    @field_validator('content', mode='before')
    @classmethod
    def _check_content(cls, value):
        return _optional_text(value, 100, 'アイデアは100文字以内で入力してください')


class MandalartInputForm(_RequestModel):
    mandalart_id: int = Field(alias='mandalartId')
    section_row_index: int = Field(alias='sectionRowIndex', ge=0, le=2)
    section_column_index: int = Field(alias='sectionColumnIndex', ge=0, le=2)
    row_index: int = Field(alias='rowIndex', ge=0, le=2)
    column_index: int = Field(alias='columnIndex', ge=0, le=2)
    content: Optional[str] = None

    @field_validator('content', mode='before')
    @classmethod
    def _check_content(cls, value):
        return _optional_text(value, 100, 'アイデアは100文字以内で入力してください')


class OsbornChecklistInputForm(_RequestModel):
    osborn_checklist_id: int = Field(alias='osbornChecklistId')
    checklist_type: str = Field(alias='checklistType')
    content: Optional[str] = None

    @field_validator('content', mode='before')
    @classmethod
    def _check_content(cls, value):
        return _optional_text(value, 1000, 'アイデアは1000文字以内で入力してください')


class IdeaForm(_RequestModel):
    name: str = Field(default='', validate_default=True)
    description: Optional[str] = None
    priority: str = 'medium'

    @field_validator('name', mode='before')
    @classmethod
    def _check_name(cls, value):
        return _text(value, 'アイデア名は必須です', 100, 'アイデア名は100文字以内で入力してください')

    @field_validator('description', mode='before')
    @classmethod
    def _check_description(cls, value):
        return _optional_text(value, 1000, '説明は1000文字以内で入力してください')

    @field_validator('priority', mode='before')
    @classmethod
    def _check_priority(cls, value):
        if value is None:
            return 'medium'
        if value not in PRIORITIES:
            raise PydanticCustomError('enum', '優先度を選択してください')
        return value


class IdeaCategoryForm(_RequestModel):
    name: str = Field(default='', validate_default=True)
    description: Optional[str] = None

    @field_validator('name', mode='before')
    @classmethod
    def _check_name(cls, value):
        return _text(value, 'カテゴリ名は必須です', 100, 'カテゴリ名は100文字以内で入力してください')

    @field_validator('description', mode='before')
    @classmethod
    def _check_description(cls, value):
        return _optional_text(value, 500, '説明は500文字以内で入力してください')


class UserForm(_RequestModel):
    name: str = Field(default='', validate_default=True)

    @field_validator('name', mode='before')
    @classmethod
    def _check_name(cls, value):
        return _text(value, '名前は必須です', 100, '名前は100文字以内で入力してください')


def validation_details(error: ValidationError) -> list[dict]:
    """ValidationError を {path, message} のリストに変換"""
    return [
        {
            'path': '.'.join(str(part) for part in item['loc']),
            'message': item['msg'],
        }
        for item in error.errors()
    ]


def first_error_message(error: ValidationError) -> str:
    errors = error.errors()
    return errors[0]['msg'] if errors else '入力データが無効です'
