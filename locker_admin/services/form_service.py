"""
Registration form builder.

A form is a title, a description, an active flag and an ordered list of
fields. Each field has one of five kinds and every kind has exactly one
validator, so submitted values are checked the same way everywhere.
"""
import logging
import re
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from firebase_admin import firestore

from .. import config
from ..errors import NotFoundError, ValidationError

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

DEFAULT_FORM_ID = 'default'
DEFAULT_TITLE = 'Student Locker Registration'
DEFAULT_DESCRIPTION = 'Please fill out this form to register for a locker assignment'

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_TEL_RE = re.compile(r'^\+?[0-9\s\-()]+$')
MIN_PHONE_DIGITS = 6


class FieldKind(str, Enum):
    TEXT = 'text'
    NUMBER = 'number'
    EMAIL = 'email'
    TEL = 'tel'
    SELECT = 'select'


@dataclass
class FormField:
    id: str
    label: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    options: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FormField':
        if not isinstance(data, dict):
            raise ValidationError('Each field must be an object', code='INVALID_FIELD')
        field_id = str(data.get('id') or '').strip()
        label = str(data.get('label') or '').strip()
        if not field_id or not label:
            raise ValidationError('Fields need an id and a label', code='INVALID_FIELD')
        try:
            kind = FieldKind(data.get('type') or 'text')
        except ValueError:
            raise ValidationError(f"Unsupported field type: {data.get('type')}", code='INVALID_FIELD')
        options = [str(o).strip() for o in (data.get('options') or []) if str(o).strip()]
        if kind is FieldKind.SELECT and not options:
            raise ValidationError(f'Select field "{label}" needs at least one option', code='INVALID_FIELD')
        return cls(id=field_id, label=label, kind=kind, required=bool(data.get('required')),
                   options=options if kind is FieldKind.SELECT else [])

    def to_dict(self) -> Dict[str, Any]:
        data = {'id': self.id, 'label': self.label, 'type': self.kind.value, 'required': self.required}
        if self.kind is FieldKind.SELECT:
            data['options'] = list(self.options)
        return data


def _validate_text(f: FormField, value: str) -> Optional[str]:
    return None


def _validate_number(f: FormField, value: str) -> Optional[str]:
    try:
        float(value)
    except ValueError:
        return f'{f.label} must be a number'
    return None


def _validate_email(f: FormField, value: str) -> Optional[str]:
    if not _EMAIL_RE.match(value):
        return f'{f.label} must be a valid email address'
    return None


def _validate_tel(f: FormField, value: str) -> Optional[str]:
    if not _TEL_RE.match(value) or sum(c.isdigit() for c in value) < MIN_PHONE_DIGITS:
        return f'{f.label} must be a valid phone number'
    return None


def _validate_select(f: FormField, value: str) -> Optional[str]:
    if value not in f.options:
        return f'{f.label} must be one of: {", ".join(f.options)}'
    return None


_VALIDATORS = {
    FieldKind.TEXT: _validate_text,
    FieldKind.NUMBER: _validate_number,
    FieldKind.EMAIL: _validate_email,
    FieldKind.TEL: _validate_tel,
    FieldKind.SELECT: _validate_select,
}


def _text(value) -> str:
    # 0 and False are answers, only None is blank
    return '' if value is None else str(value).strip()


def validate_value(f: FormField, value) -> Optional[str]:
    """Error message for ``value`` or None. Blank optional values are accepted."""
    text = _text(value)
    if not text:
        return f'{f.label} is required' if f.required else None
    return _VALIDATORS[f.kind](f, text)


def validate_submission(fields: List[FormField], data: Dict[str, Any]) -> Dict[str, str]:
    """
    Check a submission against the form.

    Raises ValidationError listing the missing required labels first (as the
    registration page shows them), then any per-kind errors.
    """
    missing = [f.label for f in fields if f.required and not _text(data.get(f.id))]
    if missing:
        raise ValidationError(f"Please fill in all required fields: {', '.join(missing)}",
                              code='MISSING_FIELDS')
    errors = {}
    for f in fields:
        message = validate_value(f, data.get(f.id))
        if message:
            errors[f.id] = message
    if errors:
        raise ValidationError('; '.join(errors.values()), code='INVALID_FIELDS')
    return {f.id: _text(data.get(f.id)) for f in fields}


def default_fields() -> List[FormField]:
    return [
        FormField(id='name', label='Student Name', kind=FieldKind.TEXT, required=True),
        FormField(id='schoolNumber', label='School Number', kind=FieldKind.TEXT, required=True),
        FormField(id='class', label='Class', kind=FieldKind.TEXT, required=True),
        FormField(id='contactNumber', label='Contact Number', kind=FieldKind.TEL, required=True),
    ]


def parse_fields(raw_fields) -> List[FormField]:
    if raw_fields is None:
        return default_fields()
    if not isinstance(raw_fields, list) or not raw_fields:
        raise ValidationError('A form needs at least one field', code='INVALID_FIELD')
    fields = [FormField.from_dict(item) for item in raw_fields]
    ids = [f.id for f in fields]
    if len(set(ids)) != len(ids):
        raise ValidationError('Field ids must be unique', code='INVALID_FIELD')
    return fields


def _display_fields(fields: List[FormField]) -> List[FormField]:
    # Older forms were created with a "Class/Grade" label
    return [
        replace(f, label='Class') if f.id == 'class' and 'grade' in f.label.lower() else f
        for f in fields
    ]


def _form_payload(doc: Dict[str, Any]) -> Dict[str, Any]:
    try:
        fields = parse_fields(doc.get('fields'))
    except ValidationError as e:
        _logger.warning(f"Form {doc.get('id')} has invalid fields, using defaults: {e.message}")
        fields = default_fields()
    return {
        'id': doc.get('id'),
        'title': doc.get('title') or DEFAULT_TITLE,
        'description': doc.get('description') or DEFAULT_DESCRIPTION,
        'isActive': doc.get('isActive') is not False,
        'createdAt': doc.get('createdAt'),
        'createdBy': doc.get('createdBy'),
        'fields': [f.to_dict() for f in _display_fields(fields)],
    }


def default_form_config() -> Dict[str, Any]:
    return {
        'id': DEFAULT_FORM_ID,
        'title': 'Student Registration',
        'description': 'Fill out this form to register',
        'isActive': True,
        'createdAt': None,
        'createdBy': None,
        'fields': [f.to_dict() for f in default_fields()],
    }


def get_form_config(repo, form_id: str) -> Dict[str, Any]:
    """Form configuration for the registration page ('default' is built in)."""
    if not form_id or form_id == DEFAULT_FORM_ID:
        return default_form_config()
    doc = repo.get(config.FORMS, form_id)
    if doc is None:
        raise NotFoundError('Form not found or is no longer available', code='FORM_NOT_FOUND')
    return _form_payload(doc)


def _sort_key(form: Dict[str, Any]):
    created = form.get('createdAt')
    return created.timestamp() if hasattr(created, 'timestamp') else 0


def list_forms(repo) -> List[Dict[str, Any]]:
    """All forms, newest first."""
    forms = [_form_payload(doc) for doc in repo.list(config.FORMS)]
    return sorted(forms, key=_sort_key, reverse=True)


def _validated_header(title, description):
    title = (title or '').strip()
    if not title:
        raise ValidationError('Form title is required', code='INVALID_FORM')
    return title, (description or '').strip()


def create_form(repo, title: str, description: str = '', is_active: bool = True,
                fields=None, created_by: str = None) -> str:
    title, description = _validated_header(title, description)
    parsed = parse_fields(fields)
    form_id = repo.add(config.FORMS, {
        'title': title,
        'description': description,
        'isActive': bool(is_active),
        'fields': [f.to_dict() for f in parsed],
        'createdAt': firestore.SERVER_TIMESTAMP,
        'createdBy': created_by,
    })
    _logger.info(f"Form {form_id} created by {created_by}")
    return form_id


def update_form(repo, form_id: str, title: str, description: str = '',
                is_active: bool = True, fields=None):
    if repo.get(config.FORMS, form_id) is None:
        raise NotFoundError('Form not found: This form may have already been deleted', code='FORM_NOT_FOUND')
    title, description = _validated_header(title, description)
    parsed = parse_fields(fields)
    repo.update(config.FORMS, form_id, {
        'title': title,
        'description': description,
        'isActive': bool(is_active),
        'fields': [f.to_dict() for f in parsed],
    })
    _logger.info(f"Form {form_id} updated")


def delete_form(repo, form_id: str):
    if repo.get(config.FORMS, form_id) is None:
        raise NotFoundError('Form not found: This form may have already been deleted', code='FORM_NOT_FOUND')
    repo.delete(config.FORMS, form_id)
    _logger.info(f"Form {form_id} deleted")


def add_field(fields: List[FormField]) -> List[FormField]:
    new_field = FormField(id=f'field_{int(time.time() * 1000)}', label='New Field')
    return list(fields) + [new_field]


def remove_field(fields: List[FormField], field_id: str) -> List[FormField]:
    return [f for f in fields if f.id != field_id]


def update_field(fields: List[FormField], field_id: str, updates: Dict[str, Any]) -> List[FormField]:
    if not any(f.id == field_id for f in fields):
        raise NotFoundError(f'Field {field_id} not found', code='FIELD_NOT_FOUND')
    updated = []
    for f in fields:
        if f.id == field_id:
            merged = f.to_dict()
            merged.update(updates)
            f = FormField.from_dict(merged)
        updated.append(f)
    return updated


def shareable_link(form_id: str, base_url: str = None) -> str:
    return f"{(base_url or config.PUBLIC_BASE_URL).rstrip('/')}/register/{form_id}"
