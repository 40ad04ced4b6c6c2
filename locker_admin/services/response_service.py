"""
Registration responses: submission, student projection, search, deletion
and CSV exports for the office.
"""
import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from .. import config
from ..errors import NotFoundError, ValidationError
from ..models import Assignment, Locker, Student, locker_number_from_id, numeric_value
from .form_service import get_form_config, parse_fields, validate_submission

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

NO_LOCKER_LABEL = 'no rent'
RESPONSES_CSV_HEADER = ['NO.', 'LOCKER NO.', 'NAME', 'CLASS', 'SCHOOL NUMBER']
LOCKERS_CSV_HEADER = ['Locker Number', 'Row', 'Column', 'Occupied', 'Student ID',
                      'Assigned At', 'Broken', 'Remarks']

# Field ids the form builder has used for the canonical student fields
_ALIASES = {
    'name': ('name', 'fullName', 'studentName', 'student'),
    'schoolNumber': ('schoolNumber', 'studentId', 'id', 'schoolNo'),
    'class': ('class', 'className', 'grade'),
    'contactNumber': ('contactNumber', 'contact', 'phone', 'mobile'),
}


def _first(data: Dict[str, Any], keys) -> str:
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return str(value).strip()
    return ''


def normalize_student_data(data: Dict[str, Any], now: datetime = None) -> Dict[str, Any]:
    """Map whatever field ids a form used onto the canonical studentData shape."""
    student_data = {key: _first(data, aliases) for key, aliases in _ALIASES.items()}
    student_data['createdAt'] = now or datetime.now(timezone.utc)
    student_data['rawData'] = dict(data)
    return student_data


def submit_response(repo, form_id: str, data: Dict[str, Any], now: datetime = None) -> str:
    """Validate a registration against its form and store it."""
    if not isinstance(data, dict):
        raise ValidationError('Submission must be an object', code='INVALID_SUBMISSION')
    form = get_form_config(repo, form_id)
    if not form['isActive']:
        raise ValidationError('This form is no longer accepting responses', code='FORM_INACTIVE')

    cleaned = validate_submission(parse_fields(form['fields']), data)
    merged = dict(data)
    merged.update(cleaned)
    now = now or datetime.now(timezone.utc)
    response_id = repo.add(config.RESPONSES, {
        'formId': form['id'],
        'studentData': normalize_student_data(merged, now),
        'submittedAt': now,
    })
    _logger.info(f"Response {response_id} submitted for form {form['id']}")
    return response_id


def project_student(doc: Dict[str, Any]) -> Student:
    return Student.from_response(doc.get('id'), doc)


def students_from_docs(docs: Iterable[Dict[str, Any]]) -> List[Student]:
    students = []
    for doc in docs:
        student = project_student(doc)
        if student is not None:
            students.append(student)
    return students


def list_students(repo) -> List[Student]:
    return students_from_docs(repo.list(config.RESPONSES))


def search_students(students: Iterable[Student], term: str) -> List[Student]:
    """Case-insensitive match on name, school number or class. Blank term matches nothing."""
    term = (term or '').strip().lower()
    if not term:
        return []
    return [
        s for s in students
        if term in s.name.lower() or term in s.school_number.lower() or term in s.class_name.lower()
    ]


def list_responses(repo) -> List[Dict[str, Any]]:
    """Responses, most recent submission first."""
    docs = repo.list(config.RESPONSES)

    def _key(doc):
        submitted = doc.get('submittedAt')
        return submitted.timestamp() if hasattr(submitted, 'timestamp') else 0

    return sorted(docs, key=_key, reverse=True)


def delete_response(repo, response_id: str):
    if repo.get(config.RESPONSES, response_id) is None:
        raise NotFoundError(f'Response {response_id} not found', code='RESPONSE_NOT_FOUND')
    repo.delete(config.RESPONSES, response_id)
    _logger.info(f"Response {response_id} deleted")


def delete_responses(repo, response_ids: Iterable[str]) -> int:
    ids = [rid for rid in response_ids if rid]
    if not ids:
        return 0
    count = repo.delete_many(config.RESPONSES, ids)
    _logger.info(f"Deleted {count} responses")
    return count


def export_responses_csv(responses: Iterable[Dict[str, Any]], assignments: Iterable[Assignment]) -> str:
    """
    Office roster: one row per response, ordered by numeric locker number with
    students who have no locker ("no rent") at the end.
    """
    locker_by_student = {a.student_id: a.locker_id for a in assignments if a.student_id}
    rows = []
    for doc in responses:
        student = project_student(doc)
        if student is None:
            continue
        locker_id = locker_by_student.get(student.id)
        locker_no = locker_number_from_id(locker_id) if locker_id else NO_LOCKER_LABEL
        rows.append((numeric_value(locker_no), locker_no, student))
    rows.sort(key=lambda r: r[0])

    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator='\n')
    writer.writerow(RESPONSES_CSV_HEADER)
    for idx, (_, locker_no, student) in enumerate(rows, start=1):
        writer.writerow([idx, locker_no, student.name, student.class_name, student.school_number])
    return out.getvalue()


def _format_dt(value) -> str:
    if hasattr(value, 'strftime'):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    return str(value or '')


def export_lockers_csv(lockers: Iterable[Locker], by: str = 'form') -> str:
    """Locker list; ``by='number'`` sorts numerically, otherwise snapshot order is kept."""
    lockers = list(lockers)
    if by == 'number':
        lockers.sort(key=lambda l: numeric_value(l.number))
    out = io.StringIO()
    writer = csv.writer(out, lineterminator='\n')
    writer.writerow(LOCKERS_CSV_HEADER)
    for l in lockers:
        writer.writerow([
            l.number, l.row, l.column,
            'Yes' if l.is_occupied else 'No',
            l.student_id or '',
            _format_dt(l.assigned_at),
            'Yes' if l.is_broken else 'No',
            l.broken_remarks or '',
        ])
    return out.getvalue()
