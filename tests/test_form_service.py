import unittest
from datetime import datetime

from fakes import InMemoryRepository

from locker_admin import config
from locker_admin.errors import NotFoundError, ValidationError
from locker_admin.services import form_service
from locker_admin.services.form_service import FieldKind, FormField


class FieldValidationTestCase(unittest.TestCase):
    def test_each_kind_has_its_validator(self):
        cases = [
            (FormField('age', 'Age', FieldKind.NUMBER), '15', 'fifteen'),
            (FormField('email', 'Email', FieldKind.EMAIL), 'ana@school.test', 'ana@'),
            (FormField('phone', 'Phone', FieldKind.TEL), '+63 (917) 555-0101', '555'),
            (FormField('section', 'Section', FieldKind.SELECT, options=['A', 'B']), 'B', 'C'),
        ]
        for f, good, bad in cases:
            self.assertIsNone(form_service.validate_value(f, good), f.kind)
            self.assertIsNotNone(form_service.validate_value(f, bad), f.kind)

    def test_blank_values(self):
        required = FormField('name', 'Student Name', required=True)
        optional = FormField('nickname', 'Nickname', FieldKind.NUMBER)
        self.assertEqual(form_service.validate_value(required, '  '), 'Student Name is required')
        self.assertIsNone(form_service.validate_value(optional, None))

    def test_select_requires_options(self):
        with self.assertRaises(ValidationError):
            FormField.from_dict({'id': 'section', 'label': 'Section', 'type': 'select', 'options': []})

    def test_unknown_kind(self):
        with self.assertRaises(ValidationError):
            FormField.from_dict({'id': 'dob', 'label': 'Birthday', 'type': 'date'})

    def test_field_round_trip_drops_options_for_non_select(self):
        f = FormField.from_dict({'id': 'n', 'label': 'N', 'type': 'text', 'options': ['x']})
        self.assertEqual(f.to_dict(), {'id': 'n', 'label': 'N', 'type': 'text', 'required': False})

    def test_missing_required_fields_are_listed(self):
        fields = form_service.default_fields()
        with self.assertRaises(ValidationError) as ctx:
            form_service.validate_submission(fields, {'name': 'Ana', 'class': '10A'})
        self.assertEqual(ctx.exception.code, 'MISSING_FIELDS')
        self.assertEqual(ctx.exception.message,
                         'Please fill in all required fields: School Number, Contact Number')

    def test_invalid_values_are_reported(self):
        fields = form_service.default_fields()
        with self.assertRaises(ValidationError) as ctx:
            form_service.validate_submission(fields, {
                'name': 'Ana', 'schoolNumber': 'S-1', 'class': '10A', 'contactNumber': 'call me',
            })
        self.assertEqual(ctx.exception.code, 'INVALID_FIELDS')

    def test_submission_values_are_trimmed(self):
        cleaned = form_service.validate_submission(form_service.default_fields(), {
            'name': ' Ana ', 'schoolNumber': 'S-1', 'class': '10A', 'contactNumber': '0917 555 0101',
        })
        self.assertEqual(cleaned['name'], 'Ana')

    def test_zero_is_an_answer(self):
        age = FormField(id='age', label='Age', kind=FieldKind.NUMBER)
        self.assertEqual(form_service.validate_submission([age], {'age': 0}), {'age': '0'})

        required_floor = FormField(id='floor', label='Floor', kind=FieldKind.NUMBER, required=True)
        self.assertEqual(form_service.validate_submission([required_floor], {'floor': 0}), {'floor': '0'})
        with self.assertRaises(ValidationError) as ctx:
            form_service.validate_submission([required_floor], {'floor': None})
        self.assertEqual(ctx.exception.code, 'MISSING_FIELDS')


class FormBuilderTestCase(unittest.TestCase):
    def test_add_update_remove_field(self):
        fields = form_service.add_field(form_service.default_fields())
        new_id = fields[-1].id
        self.assertTrue(new_id.startswith('field_'))
        self.assertEqual(fields[-1].kind, FieldKind.TEXT)

        fields = form_service.update_field(fields, new_id, {
            'label': 'Section', 'type': 'select', 'options': ['A', 'B'], 'required': True,
        })
        self.assertEqual(fields[-1].kind, FieldKind.SELECT)
        self.assertEqual(fields[-1].options, ['A', 'B'])

        fields = form_service.remove_field(fields, new_id)
        self.assertEqual([f.id for f in fields], ['name', 'schoolNumber', 'class', 'contactNumber'])

    def test_update_unknown_field(self):
        with self.assertRaises(NotFoundError) as ctx:
            form_service.update_field(form_service.default_fields(), 'field_404', {'label': 'Locker Floor'})
        self.assertEqual(ctx.exception.code, 'FIELD_NOT_FOUND')
        self.assertEqual(ctx.exception.status_code, 404)

    def test_shareable_link(self):
        self.assertEqual(form_service.shareable_link('abc', 'https://lockers.school.test/'),
                         'https://lockers.school.test/register/abc')
        self.assertTrue(form_service.shareable_link('abc').endswith('/register/abc'))


class FormStoreTestCase(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()

    def test_default_form_is_built_in(self):
        form = form_service.get_form_config(self.repo, 'default')
        self.assertTrue(form['isActive'])
        self.assertEqual([f['id'] for f in form['fields']],
                         ['name', 'schoolNumber', 'class', 'contactNumber'])
        self.assertEqual(self.repo.writes, [])

    def test_missing_form(self):
        with self.assertRaises(NotFoundError) as ctx:
            form_service.get_form_config(self.repo, 'nope')
        self.assertEqual(ctx.exception.code, 'FORM_NOT_FOUND')

    def test_create_and_read_form(self):
        form_id = form_service.create_form(self.repo, '  Grade 10 Lockers ', 'SY 2024', created_by='admin1')
        stored = self.repo.get(config.FORMS, form_id)
        self.assertIsInstance(stored['createdAt'], datetime)

        form = form_service.get_form_config(self.repo, form_id)
        self.assertEqual(form['title'], 'Grade 10 Lockers')
        self.assertEqual(form['createdBy'], 'admin1')
        self.assertEqual(len(form['fields']), 4)

    def test_create_requires_title(self):
        with self.assertRaises(ValidationError):
            form_service.create_form(self.repo, '   ')
        self.assertEqual(self.repo.writes, [])

    def test_grade_label_is_shown_as_class(self):
        self.repo.set(config.FORMS, 'old', {
            'title': 'Old form',
            'fields': [
                {'id': 'name', 'label': 'Name', 'type': 'text', 'required': True},
                {'id': 'class', 'label': 'Class/Grade', 'type': 'text', 'required': True},
            ],
        })
        form = form_service.get_form_config(self.repo, 'old')
        self.assertEqual(form['fields'][1]['label'], 'Class')

    def test_list_forms_newest_first(self):
        self.repo.set(config.FORMS, 'a', {'title': 'A', 'createdAt': datetime(2024, 1, 1)})
        self.repo.set(config.FORMS, 'b', {'title': 'B', 'createdAt': datetime(2024, 3, 1)})
        self.assertEqual([f['id'] for f in form_service.list_forms(self.repo)], ['b', 'a'])

    def test_update_and_delete(self):
        form_id = form_service.create_form(self.repo, 'Lockers')
        form_service.update_form(self.repo, form_id, 'Lockers 2024', is_active=False)
        self.assertFalse(form_service.get_form_config(self.repo, form_id)['isActive'])

        form_service.delete_form(self.repo, form_id)
        with self.assertRaises(NotFoundError):
            form_service.delete_form(self.repo, form_id)
        with self.assertRaises(NotFoundError):
            form_service.update_form(self.repo, form_id, 'Again')


if __name__ == '__main__':
    unittest.main()
