"""
Assignment service: the student <-> locker lifecycle.

Occupancy cycles Available -> Occupied -> Available through ``assign`` and
``unassign``; the broken flag is an independent axis toggled by
``mark_broken`` / ``clear_broken``. Occupancy is claimed with an atomic
conditional write on ``isOccupied`` so two admins cannot both win the same
locker.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .. import config
from ..errors import (
    AlreadyOccupiedError,
    LockerAdminError,
    NotFoundError,
    PartialFailureError,
)
from ..models import Assignment, Locker, Student, new_assignment_id
from .grid_service import get_locker
from .storage_service import delete_image_from_storage, upload_signature_to_storage

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)


def _now():
    return datetime.now(timezone.utc)


def find_assignment(repo, locker_id: str,
                    assignments: Optional[Iterable[Assignment]] = None) -> Optional[Assignment]:
    """Active assignment for a locker, from a snapshot when one is given."""
    if assignments is not None:
        return next((a for a in assignments if a.locker_id == locker_id), None)
    docs = repo.query(config.ASSIGNMENTS, {'lockerId': locker_id})
    if not docs:
        return None
    if len(docs) > 1:
        _logger.warning(f"Locker {locker_id} has {len(docs)} assignments; using the first")
    return Assignment.from_dict(docs[0], docs[0].get('id'))


def get_assignment(repo, assignment_id: str) -> Assignment:
    doc = repo.get(config.ASSIGNMENTS, assignment_id)
    if doc is None:
        raise NotFoundError(f'Assignment {assignment_id} not found', code='ASSIGNMENT_NOT_FOUND')
    return Assignment.from_dict(doc, assignment_id)


def get_student(repo, student_id: str) -> Optional[Student]:
    """Project a student out of the response document ``student_id``."""
    doc = repo.get(config.RESPONSES, student_id)
    if doc is None:
        return None
    return Student.from_response(student_id, doc)


def assign(repo, locker: Locker, student: Student, now: datetime = None) -> Assignment:
    """
    Link ``student`` to ``locker``.

    The UI-time check is repeated inside the write: the locker update and the
    assignment document are committed together only while ``isOccupied`` is
    still false.
    """
    if locker.is_occupied:
        raise AlreadyOccupiedError(f'Locker {locker.number} is already occupied')

    now = now or _now()
    assignment = Assignment(
        id=new_assignment_id(locker.id, now),
        locker_id=locker.id,
        student_id=student.id,
        assigned_at=now,
    )
    claimed = repo.update_if(
        config.LOCKERS, locker.id, 'isOccupied', False,
        {'isOccupied': True, 'studentId': student.id, 'assignedAt': now},
        also_set=(config.ASSIGNMENTS, assignment.id, assignment.to_dict()),
    )
    if not claimed:
        _logger.warning(f"Assignment race lost for locker {locker.id} (student {student.id})")
        raise AlreadyOccupiedError(f'Locker {locker.number} was just assigned to another student')

    locker.is_occupied = True
    locker.student_id = student.id
    locker.assigned_at = now
    _logger.info(f"Assigned locker {locker.id} to student {student.id} ({assignment.id})")
    return assignment


def unassign(repo, locker: Locker, assignment: Assignment) -> Dict[str, Any]:
    """
    Remove ``assignment`` and free ``locker``.

    Signature cleanup runs after both primary writes; if it fails the locker is
    still free and PartialFailureError reports the leftover signatures.
    """
    if assignment.locker_id != locker.id:
        raise LockerAdminError(
            f'Assignment {assignment.id} does not belong to locker {locker.id}',
            code='ASSIGNMENT_MISMATCH',
        )

    repo.delete(config.ASSIGNMENTS, assignment.id)
    repo.update(config.LOCKERS, locker.id, {
        'isOccupied': False,
        'studentId': None,
        'assignedAt': None,
    })
    locker.is_occupied = False
    locker.student_id = None
    locker.assigned_at = None
    _logger.info(f"Removed student {assignment.student_id} from locker {locker.id}")

    result = {'lockerId': locker.id, 'assignmentId': assignment.id, 'signaturesDeleted': 0}
    orphaned = []
    try:
        signatures = repo.query(config.SIGNATURES, {
            'studentId': assignment.student_id,
            'lockerId': locker.id,
        })
        if signatures:
            result['signaturesDeleted'] = repo.delete_many(config.SIGNATURES, [s['id'] for s in signatures])
            for signature in signatures:
                url = signature.get('signatureUrl')
                if url and not delete_image_from_storage(url):
                    orphaned.append(url)
    except LockerAdminError as e:
        _logger.error(f"Failed to delete signatures for locker {locker.id}: {e.message}")
        raise PartialFailureError(
            'Student removed but signature cleanup failed. Please contact admin.',
            result=result,
            cause=e,
            code='SIGNATURE_CLEANUP_FAILED',
        ) from e
    if orphaned:
        result['orphanedImages'] = orphaned
        _logger.warning(f"{len(orphaned)} signature image(s) for locker {locker.id} were left in storage")
        raise PartialFailureError(
            'Student removed but some signature images could not be deleted. Please contact admin.',
            result=result,
            code='SIGNATURE_IMAGE_CLEANUP_FAILED',
        )
    return result


def mark_broken(repo, locker: Locker, remarks: str = None) -> Locker:
    """Flag a locker as broken. Occupancy is left untouched."""
    remarks = (remarks or '').strip() or None
    repo.update(config.LOCKERS, locker.id, {'isBroken': True, 'brokenRemarks': remarks})
    locker.is_broken = True
    locker.broken_remarks = remarks
    _logger.info(f"Locker {locker.id} marked broken: {remarks or 'no remarks'}")
    return locker


def clear_broken(repo, locker: Locker) -> Locker:
    repo.update(config.LOCKERS, locker.id, {'isBroken': False, 'brokenRemarks': None})
    locker.is_broken = False
    locker.broken_remarks = None
    _logger.info(f"Locker {locker.id} broken state cleared")
    return locker


def resolve_assigned_student(repo, locker: Locker,
                             assignments: Optional[Iterable[Assignment]] = None) -> Optional[Student]:
    """
    Student currently holding ``locker``: the assignment's ``studentId`` is
    the id of the registration response. None when either link is missing.
    """
    assignment = find_assignment(repo, locker.id, assignments)
    if assignment is None or not assignment.student_id:
        return None
    return get_student(repo, assignment.student_id)


def attach_signature(repo, student: Student, image_bytes: bytes,
                     assignment: Optional[Assignment] = None, now: datetime = None) -> Dict[str, Any]:
    """
    Store a captured signature and link it to ``assignment``.

    The image goes to Firebase Storage when a bucket is available, otherwise it
    is kept inline as a base64 data URL. ``assignment`` may be None for
    signatures collected before a locker is chosen.
    """
    now = now or _now()
    is_url, location = upload_signature_to_storage(image_bytes)
    image_field = 'signatureUrl' if is_url else 'signatureBase64'

    signature_doc = {
        'studentId': student.id,
        'studentName': student.name,
        'studentSchoolNumber': student.school_number,
        image_field: location,
        'createdAt': now,
        'lockerId': assignment.locker_id if assignment else None,
        'assignmentId': assignment.id if assignment else None,
    }
    signature_id = repo.add(config.SIGNATURES, signature_doc)

    if assignment is not None:
        repo.update(config.ASSIGNMENTS, assignment.id, {
            'signatureId': signature_id,
            image_field: location,
            'signatureCompletedAt': now,
        })
        assignment.signature_id = signature_id
        setattr(assignment, 'signature_url' if is_url else 'signature_base64', location)
        assignment.signature_completed_at = now

    _logger.info(f"Signature {signature_id} stored for student {student.id}"
                 f"{' on ' + assignment.id if assignment else ''}")
    return {'signatureId': signature_id, image_field: location, 'signatureCompletedAt': now}


def get_locker_detail(repo, locker_id: str) -> Dict[str, Any]:
    """Locker, current assignment and resolved student for the detail dialog."""
    locker = get_locker(repo, locker_id)
    assignment = find_assignment(repo, locker.id) if locker.is_occupied else None
    student = get_student(repo, assignment.student_id) if assignment and assignment.student_id else None
    return {
        'locker': locker.to_dict(),
        'status': locker.status,
        'assignment': assignment.to_dict() if assignment else None,
        'student': student.to_dict() if student else None,
    }


def assignments_from_docs(docs: Iterable[Dict[str, Any]]) -> List[Assignment]:
    return [Assignment.from_dict(d, d.get('id')) for d in docs]
