from flask import Blueprint, jsonify, request
import logging

from ..errors import ValidationError
from ..repository import get_repository
from ..services.form_service import get_form_config
from ..services.response_service import submit_response

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

# Student-facing registration; no session required
public_bp = Blueprint('public', __name__, url_prefix='/register')


@public_bp.route('/<form_id>', methods=['GET'])
def registration_form(form_id):
    """Form configuration rendered by the registration page."""
    form = get_form_config(get_repository(), form_id)
    return jsonify({'success': True, 'form': form}), 200


@public_bp.route('/<form_id>', methods=['POST'])
def submit_registration(form_id):
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not data:
        raise ValidationError('No registration data received', code='INVALID_SUBMISSION')

    response_id = submit_response(get_repository(), form_id, data)
    return jsonify({
        'success': True,
        'id': response_id,
        'message': 'Registration submitted successfully!',
    }), 201
