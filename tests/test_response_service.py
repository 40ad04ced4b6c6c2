import csv
import io
import unittest
from datetime import datetime, timezone

from fakes import InMemoryRepository

from locker_admin import config
from locker_admin.errors import NotFoundError, ValidationError
from locker_admin.models import Assignment, Locker
from locker_admin.services import response_service

NOW = datetime(2024, 6, 3, 8, 30, tzinfo=timezone.utc)


def response_doc(doc_id, name, school_number, class_name, submitted=NOW):
    return {
        'id': doc_id,
        'formId': 'default',
        'studentData': {'name': name, 'schoolNumber': school_number, 'class': class_name},
        'submittedAt': submitted,
    }


class SubmissionTestCase(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()

    def test_aliases_are_normalized(self):
        data = response_service.normalize_student_data({
            'fullName': 'Ana Cruz', 'studentId': 'S-001', 'grade': '10A', 'phone': '0917 555 0101',
        }, NOW)
        self.assertEqual(data['name'], 'Ana Cruz')
        self.assertEqual(data['schoolNumber'], 'S-001')
        self.assertEqual(data['class'], '10A')
        self.assertEqual(data['contactNumber'], '0917 555 0101')
        self.assertEqual(data['rawData']['fullName'], 'Ana Cruz')
        self.assertEqual(data['createdAt'], NOW)

    def test_submit_to_default_form(self):
        response_id = response_service.submit_response(self.repo, 'default', {
            'name': ' Ana Cruz ', 'schoolNumber': 'S-001', 'class': '10A', 'contactNumber': '09175550101',
        }, now=NOW)

        stored = self.repo.get(config.RESPONSES, response_id)
        self.assertEqual(stored['formId'], 'default')
        self.assertEqual(stored['submittedAt'], NOW)
        self.assertEqual(stored['studentData']['name'], 'Ana Cruz')
        student = response_service.project_student(stored)
        self.assertEqual(student.school_number, 'S-001')

    def test_submit_to_inactive_form(self):
        self.repo.set(config.FORMS, 'closed', {'title': 'Closed', 'isActive': False})
        with self.assertRaises(ValidationError) as ctx:
            response_service.submit_response(self.repo, 'closed', {'name': 'Ana'})
        self.assertEqual(ctx.exception.code, 'FORM_INACTIVE')
        self.assertEqual(self.repo.docs(config.RESPONSES), {})

    def test_submit_with_missing_fields(self):
        with self.assertRaises(ValidationError):
            response_service.submit_response(self.repo, 'default', {'name': 'Ana'})
        self.assertEqual(self.repo.docs(config.RESPONSES), {})

    def test_submit_to_unknown_form(self):
        with self.assertRaises(NotFoundError):
            response_service.submit_response(self.repo, 'missing', {'name': 'Ana'})


class StudentSearchTestCase(unittest.TestCase):
    def setUp(self):
        self.students = response_service.students_from_docs([
            response_doc('r1', 'Ana Cruz', 'S-001', '10A'),
            response_doc('r2', 'Ben Santos', 'S-002', '10B'),
            {'id': 'r3', 'name': 'Carla Reyes', 'schoolNumber': 'S-103', 'class': '11A'},
        ])

    def test_flat_documents_are_projected(self):
        self.assertEqual([s.name for s in self.students], ['Ana Cruz', 'Ben Santos', 'Carla Reyes'])

    def test_search_is_case_insensitive_across_fields(self):
        self.assertEqual([s.id for s in response_service.search_students(self.students, 'ana')], ['r1'])
        self.assertEqual([s.id for s in response_service.search_students(self.students, 's-10')], ['r3'])
        self.assertEqual([s.id for s in response_service.search_students(self.students, '10')],
                         ['r1', 'r2', 'r3'])
        self.assertEqual(response_service.search_students(self.students, '   '), [])


class ResponseStoreTestCase(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryRepository()
        for doc in (response_doc('r1', 'Ana', 'S-1', '10A', datetime(2024, 5, 1, tzinfo=timezone.utc)),
                    response_doc('r2', 'Ben', 'S-2', '10A', datetime(2024, 6, 1, tzinfo=timezone.utc)),
                    response_doc('r3', 'Cy', 'S-3', '10A', datetime(2024, 4, 1, tzinfo=timezone.utc))):
            self.repo.set(config.RESPONSES, doc.pop('id'), doc)

    def test_list_newest_first(self):
        self.assertEqual([r['id'] for r in response_service.list_responses(self.repo)], ['r2', 'r1', 'r3'])

    def test_delete_one(self):
        response_service.delete_response(self.repo, 'r1')
        self.assertNotIn('r1', self.repo.docs(config.RESPONSES))
        with self.assertRaises(NotFoundError):
            response_service.delete_response(self.repo, 'r1')

    def test_bulk_delete(self):
        self.assertEqual(response_service.delete_responses(self.repo, ['r1', 'r3', '']), 2)
        self.assertEqual(list(self.repo.docs(config.RESPONSES)), ['r2'])
        self.assertEqual(response_service.delete_responses(self.repo, []), 0)


class CsvExportTestCase(unittest.TestCase):
    def test_roster_sorted_by_locker_with_unassigned_last(self):
        responses = [
            response_doc('r1', 'Ana Cruz', 'S-001', '10A'),
            response_doc('r2', 'Ben Santos', 'S-002', '10B'),
            response_doc('r3', 'Carla Reyes', 'S-003', '11A'),
        ]
        assignments = [
            Assignment(id='a1', locker_id='locker_1012', student_id='r1'),
            Assignment(id='a2', locker_id='locker_1009', student_id='r3'),
        ]
        text = response_service.export_responses_csv(responses, assignments)

        lines = text.splitlines()
        self.assertEqual(lines[0], '"NO.","LOCKER NO.","NAME","CLASS","SCHOOL NUMBER"')
        rows = list(csv.reader(io.StringIO(text)))[1:]
        self.assertEqual(rows, [
            ['1', '1009', 'Carla Reyes', '11A', 'S-003'],
            ['2', '1012', 'Ana Cruz', '10A', 'S-001'],
            ['3', 'no rent', 'Ben Santos', '10B', 'S-002'],
        ])

    def test_locker_list_by_number(self):
        lockers = [
            Locker(id='locker_1010', number='1010', column=4, is_occupied=True, student_id='r1',
                   assigned_at=datetime(2024, 6, 3, 8, 30)),
            Locker(id='locker_1002', number='1002', row=2, is_broken=True, broken_remarks='no key'),
        ]
        rows = list(csv.reader(io.StringIO(response_service.export_lockers_csv(lockers, 'number'))))
        self.assertEqual(rows[0][0], 'Locker Number')
        self.assertEqual(rows[1], ['1002', '2', '0', 'No', '', '', 'Yes', 'no key'])
        self.assertEqual(rows[2], ['1010', '0', '4', 'Yes', 'r1', '2024-06-03 08:30:00', 'No', ''])

        unsorted = list(csv.reader(io.StringIO(response_service.export_lockers_csv(lockers))))
        self.assertEqual([r[0] for r in unsorted[1:]], ['1010', '1002'])


if __name__ == '__main__':
    unittest.main()
