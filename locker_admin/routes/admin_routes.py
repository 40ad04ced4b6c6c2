from flask import Blueprint, Response, jsonify, request, session
import logging

from .. import config
from ..auth import admin_required, current_principal
from ..errors import LockerAdminError, NotFoundError, PartialFailureError, ValidationError
from ..repository import get_repository
from ..services import assignment_service, grid_service
from ..services.dashboard_service import compute_dashboard_view
from ..services.form_service import (
    add_field,
    create_form,
    delete_form,
    get_form_config,
    list_forms,
    parse_fields,
    remove_field,
    shareable_link,
    update_field,
    update_form,
)
from ..services.response_service import (
    delete_response,
    delete_responses,
    export_lockers_csv,
    export_responses_csv,
    list_responses,
    list_students,
    search_students,
    students_from_docs,
)
from ..services.signature_service import SignatureCanvas, decode_data_url
from .streaming import live_event_stream

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

GRID_COLLECTIONS = (config.LOCKERS, config.ASSIGNMENTS)
DASHBOARD_COLLECTIONS = (config.FORMS, config.RESPONSES, config.LOCKERS, config.ASSIGNMENTS)


@admin_bp.app_errorhandler(LockerAdminError)
def handle_locker_admin_error(error):
    payload = error.to_dict()
    if isinstance(error, PartialFailureError) and error.result:
        payload.update(error.result)
    if error.status_code >= 500:
        _logger.error(f"{request.method} {request.path} failed: {error.code} {error.message}")
    return jsonify(payload), error.status_code


def _json_body():
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object', code='INVALID_BODY')
    return body


def _snapshot(repo, collections):
    return {name: repo.list(name) for name in collections}


def _max_events():
    # Lets short-lived clients read a bounded number of updates and disconnect
    limit = request.args.get('limit', type=int)
    return limit if limit and limit > 0 else None


def _optional_number(body, key):
    value = body.get(key)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number', code='INVALID_STROKE')
    if number <= 0:
        raise ValidationError(f'{key} must be positive', code='INVALID_STROKE')
    return number


def _signature_bytes(body):
    """PNG bytes from either a rendered ``dataUrl`` or a raw ``events`` stroke log."""
    if body.get('dataUrl'):
        return decode_data_url(body['dataUrl'])
    events = body.get('events')
    if isinstance(events, list):
        canvas = SignatureCanvas.replay(
            events,
            width=_optional_number(body, 'width'),
            height=_optional_number(body, 'height'),
            device_pixel_ratio=_optional_number(body, 'devicePixelRatio') or 1.0,
            container_width=_optional_number(body, 'containerWidth'),
        )
        return canvas.export_image()
    raise ValidationError('Signature data is required (dataUrl or events)', code='MISSING_SIGNATURE')


def _require_student(repo, student_id):
    if not student_id:
        raise ValidationError('studentId is required', code='MISSING_STUDENT')
    student = assignment_service.get_student(repo, student_id)
    if student is None:
        raise NotFoundError(f'Student {student_id} not found', code='STUDENT_NOT_FOUND')
    return student


# =============================
# Locker grid
# =============================
@admin_bp.route('/api/lockers', methods=['GET'])
@admin_required
def api_lockers():
    repo = get_repository()
    view = grid_service.compute_grid_view(_snapshot(repo, GRID_COLLECTIONS))
    view['success'] = True
    return jsonify(view), 200


@admin_bp.route('/api/lockers/initialize', methods=['POST'])
@admin_required
def api_initialize_lockers():
    created = grid_service.initialize_grid(get_repository(), current_principal())
    return jsonify({'success': True, 'created': created}), 200


@admin_bp.route('/api/lockers/stream', methods=['GET'])
@admin_required
def sse_lockers_stream():
    """Real-time stream of the locker grid.
    Seeds the default grid on first use, then pushes the full grid view whenever
    lockers or assignments change.
    """
    repo = get_repository()
    grid_service.initialize_grid(repo, current_principal())
    return live_event_stream(repo, GRID_COLLECTIONS, grid_service.compute_grid_view,
                             key='grid', max_messages=_max_events())


@admin_bp.route('/api/lockers/<locker_id>', methods=['GET'])
@admin_required
def api_locker_detail(locker_id):
    detail = assignment_service.get_locker_detail(get_repository(), locker_id)
    detail['success'] = True
    return jsonify(detail), 200


@admin_bp.route('/api/lockers/<locker_id>/assign', methods=['POST'])
@admin_required
def api_assign_locker(locker_id):
    repo = get_repository()
    body = _json_body()
    locker = grid_service.get_locker(repo, locker_id)
    student = _require_student(repo, body.get('studentId'))
    assignment = assignment_service.assign(repo, locker, student)
    return jsonify({
        'success': True,
        'message': f'Locker {locker.number} assigned to {student.name}',
        'assignment': assignment.to_dict(),
        'locker': locker.to_dict(),
    }), 201


@admin_bp.route('/api/lockers/<locker_id>/unassign', methods=['POST'])
@admin_required
def api_unassign_locker(locker_id):
    repo = get_repository()
    body = _json_body()
    locker = grid_service.get_locker(repo, locker_id)
    if body.get('assignmentId'):
        assignment = assignment_service.get_assignment(repo, body['assignmentId'])
    else:
        assignment = assignment_service.find_assignment(repo, locker.id)
    if assignment is None:
        raise NotFoundError(f'Locker {locker.number} has no active assignment', code='ASSIGNMENT_NOT_FOUND')

    result = assignment_service.unassign(repo, locker, assignment)
    result.update({'success': True, 'message': 'Student removed from locker successfully'})
    return jsonify(result), 200


@admin_bp.route('/api/lockers/<locker_id>/broken', methods=['POST'])
@admin_required
def api_mark_broken(locker_id):
    repo = get_repository()
    locker = grid_service.get_locker(repo, locker_id)
    assignment_service.mark_broken(repo, locker, _json_body().get('remarks'))
    return jsonify({'success': True, 'locker': locker.to_dict()}), 200


@admin_bp.route('/api/lockers/<locker_id>/broken', methods=['DELETE'])
@admin_required
def api_clear_broken(locker_id):
    repo = get_repository()
    locker = grid_service.get_locker(repo, locker_id)
    assignment_service.clear_broken(repo, locker)
    return jsonify({'success': True, 'locker': locker.to_dict()}), 200


@admin_bp.route('/api/grid/<axis>', methods=['POST', 'DELETE'])
@admin_required
def api_resize_grid(axis):
    if axis not in ('rows', 'columns'):
        raise NotFoundError(f'Unknown grid axis: {axis}', code='UNKNOWN_AXIS')
    repo = get_repository()
    if request.method == 'POST':
        grow = grid_service.grow_row if axis == 'rows' else grid_service.grow_column
        locker, created = grow(repo)
        payload = {'success': True, 'created': created, 'locker': locker.to_dict()}
        if not created:
            payload['warning'] = f'Locker {locker.number} already exists; nothing was added'
        return jsonify(payload), 201 if created else 200

    shrink = grid_service.shrink_row if axis == 'rows' else grid_service.shrink_column
    removed = shrink(repo)
    return jsonify({'success': True, 'removed': removed.to_dict()}), 200


# =============================
# Signatures
# =============================
@admin_bp.route('/api/lockers/<locker_id>/signature', methods=['POST'])
@admin_required
def api_locker_signature(locker_id):
    repo = get_repository()
    body = _json_body()
    locker = grid_service.get_locker(repo, locker_id)
    assignment = assignment_service.find_assignment(repo, locker.id)
    if assignment is None:
        raise NotFoundError(f'Locker {locker.number} has no active assignment', code='ASSIGNMENT_NOT_FOUND')
    student = _require_student(repo, assignment.student_id)
    image_bytes = _signature_bytes(body)
    stored = assignment_service.attach_signature(repo, student, image_bytes, assignment)
    stored.update({'success': True, 'assignmentId': assignment.id})
    return jsonify(stored), 201


@admin_bp.route('/api/signatures', methods=['POST'])
@admin_required
def api_signature():
    """Signature collected before a locker is chosen."""
    repo = get_repository()
    body = _json_body()
    student = _require_student(repo, body.get('studentId'))
    image_bytes = _signature_bytes(body)
    stored = assignment_service.attach_signature(repo, student, image_bytes)
    stored['success'] = True
    return jsonify(stored), 201


# =============================
# Students & responses
# =============================
@admin_bp.route('/api/students', methods=['GET'])
@admin_required
def api_students():
    students = list_students(get_repository())
    term = request.args.get('q')
    if term is not None:
        students = search_students(students, term)
    return jsonify({'success': True, 'students': [s.to_dict() for s in students]}), 200


@admin_bp.route('/api/responses', methods=['GET'])
@admin_required
def api_responses():
    return jsonify({'success': True, 'responses': list_responses(get_repository())}), 200


@admin_bp.route('/api/responses/<response_id>', methods=['DELETE'])
@admin_required
def api_delete_response(response_id):
    delete_response(get_repository(), response_id)
    return jsonify({'success': True}), 200


@admin_bp.route('/api/responses/bulk-delete', methods=['POST'])
@admin_required
def api_bulk_delete_responses():
    ids = _json_body().get('ids')
    if not isinstance(ids, list) or not ids:
        raise ValidationError('ids must be a non-empty list', code='INVALID_IDS')
    deleted = delete_responses(get_repository(), ids)
    return jsonify({'success': True, 'deleted': deleted}), 200


def _csv_response(body, filename):
    return Response(
        body,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'},
    )


@admin_bp.route('/api/export/responses.csv', methods=['GET'])
@admin_required
def api_export_responses():
    repo = get_repository()
    responses = repo.list(config.RESPONSES)
    # Exports what the responses list shows: all rows, or the ones matching ?q=
    term = (request.args.get('q') or '').strip()
    if term:
        matched = {s.id for s in search_students(students_from_docs(responses), term)}
        responses = [doc for doc in responses if doc.get('id') in matched]
    assignments = assignment_service.assignments_from_docs(repo.list(config.ASSIGNMENTS))
    return _csv_response(export_responses_csv(responses, assignments),
                         'locker_registrations.csv')


@admin_bp.route('/api/export/lockers.csv', methods=['GET'])
@admin_required
def api_export_lockers():
    by = request.args.get('by', 'form')
    if by not in ('form', 'number'):
        raise ValidationError("by must be 'form' or 'number'", code='INVALID_SORT')
    lockers = grid_service.load_lockers(get_repository())
    return _csv_response(export_lockers_csv(lockers, by), f'lockers_by_{by}.csv')


# =============================
# Forms
# =============================
def _with_link(form):
    form = dict(form)
    form['link'] = shareable_link(form['id'])
    return form


@admin_bp.route('/api/forms', methods=['GET'])
@admin_required
def api_forms():
    forms = [_with_link(f) for f in list_forms(get_repository())]
    return jsonify({'success': True, 'forms': forms}), 200


@admin_bp.route('/api/forms', methods=['POST'])
@admin_required
def api_create_form():
    body = _json_body()
    form_id = create_form(
        get_repository(),
        title=body.get('title'),
        description=body.get('description'),
        is_active=body.get('isActive', True),
        fields=body.get('fields'),
        created_by=session.get('user_id'),
    )
    return jsonify({'success': True, 'id': form_id, 'link': shareable_link(form_id)}), 201


@admin_bp.route('/api/forms/<form_id>', methods=['GET'])
@admin_required
def api_get_form(form_id):
    return jsonify({'success': True, 'form': _with_link(get_form_config(get_repository(), form_id))}), 200


@admin_bp.route('/api/forms/<form_id>', methods=['PUT'])
@admin_required
def api_update_form(form_id):
    body = _json_body()
    update_form(
        get_repository(), form_id,
        title=body.get('title'),
        description=body.get('description'),
        is_active=body.get('isActive', True),
        fields=body.get('fields'),
    )
    return jsonify({'success': True}), 200


@admin_bp.route('/api/forms/<form_id>', methods=['DELETE'])
@admin_required
def api_delete_form(form_id):
    delete_form(get_repository(), form_id)
    return jsonify({'success': True}), 200


def _edit_fields(form_id, edit):
    repo = get_repository()
    form = get_form_config(repo, form_id)
    fields = edit(parse_fields(form['fields']))
    update_form(repo, form_id, title=form['title'], description=form['description'],
                is_active=form['isActive'], fields=[f.to_dict() for f in fields])
    return jsonify({'success': True, 'fields': [f.to_dict() for f in fields]}), 200


@admin_bp.route('/api/forms/<form_id>/fields', methods=['POST'])
@admin_required
def api_add_field(form_id):
    return _edit_fields(form_id, add_field)


@admin_bp.route('/api/forms/<form_id>/fields/<field_id>', methods=['PATCH'])
@admin_required
def api_update_field(form_id, field_id):
    updates = _json_body()
    return _edit_fields(form_id, lambda fields: update_field(fields, field_id, updates))


@admin_bp.route('/api/forms/<form_id>/fields/<field_id>', methods=['DELETE'])
@admin_required
def api_remove_field(form_id, field_id):
    return _edit_fields(form_id, lambda fields: remove_field(fields, field_id))


# =============================
# Dashboard
# =============================
@admin_bp.route('/api/dashboard', methods=['GET'])
@admin_required
def api_dashboard():
    view = compute_dashboard_view(_snapshot(get_repository(), DASHBOARD_COLLECTIONS))
    view['success'] = True
    return jsonify(view), 200


@admin_bp.route('/api/dashboard/stream', methods=['GET'])
@admin_required
def sse_dashboard_stream():
    return live_event_stream(get_repository(), DASHBOARD_COLLECTIONS, compute_dashboard_view,
                             key='dashboard', max_messages=_max_events())
