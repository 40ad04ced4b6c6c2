"""Dashboard statistics and recent activity, derived from collection snapshots."""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from .. import config
from ..models import Student, locker_number_from_id

RECENT_RESPONSE_DAYS = 7


def _as_datetime(value):
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return None


def compute_dashboard_stats(slots: Dict[str, List[Dict[str, Any]]], now: datetime = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    week_ago = now - timedelta(days=RECENT_RESPONSE_DAYS)

    forms = slots.get(config.FORMS) or []
    responses = slots.get(config.RESPONSES) or []
    lockers = slots.get(config.LOCKERS) or []
    assignments = slots.get(config.ASSIGNMENTS) or []

    occupied = sum(1 for l in lockers if l.get('isOccupied'))
    recent = 0
    for r in responses:
        submitted = _as_datetime(r.get('submittedAt'))
        if submitted and submitted > week_ago:
            recent += 1
    signed = sum(
        1 for a in assignments
        if a.get('signatureId') or a.get('signatureUrl') or a.get('signatureBase64')
    )

    return {
        'totalForms': len(forms),
        'totalResponses': len(responses),
        'recentResponses': recent,
        'totalLockers': len(lockers),
        'occupiedLockers': occupied,
        'totalSignatures': signed,
        'occupancyRate': round(occupied / len(lockers) * 100, 1) if lockers else 0.0,
    }


def compute_recent_activity(slots: Dict[str, List[Dict[str, Any]]], limit: int = 10) -> List[Dict[str, Any]]:
    """Newest registrations and locker assignments, merged by timestamp."""
    activities = []
    for doc in slots.get(config.RESPONSES) or []:
        submitted = _as_datetime(doc.get('submittedAt'))
        student = Student.from_response(doc.get('id'), doc)
        if not submitted or student is None:
            continue
        activities.append({
            'id': doc.get('id'),
            'type': 'response',
            'title': 'New Registration',
            'description': f'{student.name} submitted registration form',
            'timestamp': submitted,
            'studentName': student.name,
        })
    for doc in slots.get(config.ASSIGNMENTS) or []:
        assigned = _as_datetime(doc.get('assignedAt'))
        if not assigned:
            continue
        activities.append({
            'id': doc.get('id'),
            'type': 'assignment',
            'title': 'Locker Assigned',
            'description': f"Locker {locker_number_from_id(doc.get('lockerId') or '')} assigned",
            'timestamp': assigned,
        })
    activities.sort(key=lambda a: a['timestamp'], reverse=True)
    return activities[:limit]


def compute_dashboard_view(slots: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    return {
        'stats': compute_dashboard_stats(slots),
        'recentActivity': compute_recent_activity(slots),
    }
