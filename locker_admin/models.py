"""
Document models for lockers, assignments and the students projected from
registration responses.

Firestore documents keep the camelCase field names the admin dashboard has
always written; the dataclasses expose snake_case attributes and convert at
the boundary with ``from_dict`` / ``to_dict``.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOCKER_ID_PREFIX = 'locker_'
ASSIGNMENT_ID_PREFIX = 'assignment_'


def locker_id_for(number) -> str:
    return f"{LOCKER_ID_PREFIX}{number}"


def locker_number_from_id(locker_id: str) -> str:
    if locker_id and locker_id.startswith(LOCKER_ID_PREFIX):
        return locker_id[len(LOCKER_ID_PREFIX):]
    return locker_id or ''


def new_assignment_id(locker_id: str, now: datetime = None) -> str:
    """Build ``assignment_<epoch-ms>_<lockerId>``."""
    now = now or datetime.now(timezone.utc)
    return f"{ASSIGNMENT_ID_PREFIX}{int(now.timestamp() * 1000)}_{locker_id}"


def numeric_value(number) -> float:
    """Numeric sort key for a locker number; non-numeric labels sort last."""
    try:
        return int(str(number).strip())
    except (TypeError, ValueError):
        return float('inf')


def _as_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class Locker:
    id: str
    number: str
    row: int = 0
    column: int = 0
    is_occupied: bool = False
    student_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    is_broken: bool = False
    broken_remarks: Optional[str] = None

    @property
    def axis(self) -> Optional[str]:
        """'row' or 'column' for a well-formed axis locker, otherwise None."""
        if self.row > 0 and self.column == 0:
            return 'row'
        if self.row == 0 and self.column > 0:
            return 'column'
        return None

    @property
    def axis_index(self) -> int:
        return self.row if self.axis == 'row' else self.column

    @property
    def status(self) -> str:
        return 'occupied' if self.is_occupied else 'available'

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: str = None) -> 'Locker':
        data = data or {}
        locker_id = doc_id or data.get('id') or locker_id_for(data.get('number', ''))
        return cls(
            id=locker_id,
            number=str(data.get('number') or locker_number_from_id(locker_id)),
            row=_as_int(data.get('row')),
            column=_as_int(data.get('column')),
            is_occupied=bool(data.get('isOccupied')),
            student_id=data.get('studentId'),
            assigned_at=data.get('assignedAt'),
            is_broken=bool(data.get('isBroken')),
            broken_remarks=data.get('brokenRemarks') or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'number': self.number,
            'row': self.row,
            'column': self.column,
            'isOccupied': self.is_occupied,
            'studentId': self.student_id,
            'assignedAt': self.assigned_at,
            'isBroken': self.is_broken,
            'brokenRemarks': self.broken_remarks,
        }


@dataclass
class Assignment:
    id: str
    locker_id: str
    student_id: str
    assigned_at: Optional[datetime] = None
    signature_id: Optional[str] = None
    signature_url: Optional[str] = None
    signature_base64: Optional[str] = None
    signature_completed_at: Optional[datetime] = None

    @property
    def has_signature(self) -> bool:
        return bool(self.signature_id or self.signature_url or self.signature_base64)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], doc_id: str = None) -> 'Assignment':
        data = data or {}
        return cls(
            id=doc_id or data.get('id'),
            locker_id=data.get('lockerId'),
            student_id=data.get('studentId'),
            assigned_at=data.get('assignedAt'),
            signature_id=data.get('signatureId'),
            signature_url=data.get('signatureUrl'),
            signature_base64=data.get('signatureBase64'),
            signature_completed_at=data.get('signatureCompletedAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'lockerId': self.locker_id,
            'studentId': self.student_id,
            'assignedAt': self.assigned_at,
            'signatureId': self.signature_id,
            'signatureUrl': self.signature_url,
            'signatureBase64': self.signature_base64,
            'signatureCompletedAt': self.signature_completed_at,
        }


@dataclass
class Student:
    """A registrant, projected from a response document (never stored itself)."""
    id: str
    name: str = ''
    school_number: str = ''
    class_name: str = ''
    contact_number: str = ''
    created_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, doc_id: str, data: Dict[str, Any]) -> Optional['Student']:
        """
        Project student fields out of a response document.

        Newer responses nest them under ``studentData``; some older ones under
        ``data.studentData``; the oldest store them flat on the document.
        """
        data = data or {}
        nested = data.get('data') if isinstance(data.get('data'), dict) else {}
        student_data = nested.get('studentData') or data.get('studentData') or data
        if not isinstance(student_data, dict):
            return None
        return cls(
            id=doc_id,
            name=student_data.get('name') or '',
            school_number=str(student_data.get('schoolNumber') or ''),
            class_name=str(student_data.get('class') or ''),
            contact_number=str(
                student_data.get('contactNumber')
                or student_data.get('contact')
                or student_data.get('phone')
                or student_data.get('mobile')
                or ''
            ),
            created_at=student_data.get('createdAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'schoolNumber': self.school_number,
            'class': self.class_name,
            'contactNumber': self.contact_number,
            'createdAt': self.created_at,
        }
