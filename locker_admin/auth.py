"""Admin sessions for the locker office."""
import hashlib
import logging
from datetime import timedelta
from functools import wraps

from flask import jsonify, request, session

from . import config
from .repository import get_repository

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

ADMIN_ROLE = 'admin'


def configure_session(app):
    app.permanent_session_lifetime = timedelta(minutes=config.SESSION_LIFETIME_MINUTES)

    # Sliding expiry: every request renews the admin session
    @app.before_request
    def refresh_session():
        session.permanent = True
        session.modified = True


def hash_password(password):
    """SHA-256 hex digest, the format stored on user documents."""
    return hashlib.sha256(password.encode()).hexdigest()


def _find_user(repo, login_id):
    user = repo.get(config.USERS, login_id)
    if user is None:
        # The office logs in with an email address rather than the document id
        matches = repo.query(config.USERS, {'email': login_id})
        user = matches[0] if matches else None
    return user


def authenticate_user(login_id, password):
    """
    Check admin credentials. Returns the user document, or ``{"error": ...}``
    describing why the login was refused.
    """
    if not login_id or not password:
        return {"error": "User ID and password are required"}

    user = _find_user(get_repository(), login_id)
    if user is None:
        return {"error": "User ID not found"}
    if user.get('password') != hash_password(password):
        return {"error": "Incorrect password"}
    if user.get('status', 'active') != 'active':
        return {"error": "Account is not active"}
    if user.get('role') != ADMIN_ROLE:
        return {"error": "Admin access required"}
    return user


def login_user(user):
    session['user_id'] = user.get('user_id') or user.get('id')
    session['name'] = user.get('name')
    session['role'] = user.get('role')
    session['email'] = user.get('email')
    _logger.info(f"Admin {session['user_id']} signed in")


def is_admin():
    return 'user_id' in session and session.get('role') == ADMIN_ROLE


def current_principal():
    """Id of the signed-in admin, or None"""
    return session.get('user_id') if is_admin() else None


def admin_required(f):
    """Reject API calls without an admin session with a 401 JSON body."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_admin():
            return jsonify({
                'success': False,
                'error': 'Unauthorized - Admin access required',
                'code': 'UNAUTHORIZED',
                'path': request.path,
            }), 401
        return f(*args, **kwargs)
    return decorated_function
