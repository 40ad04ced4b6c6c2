from flask import Flask, request, session, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import logging
import os

from locker_admin import config
from locker_admin.auth import configure_session, authenticate_user, login_user, is_admin
from locker_admin.routes.admin_routes import admin_bp
from locker_admin.routes.public_routes import public_bp
from locker_admin.routes.streaming import IsoJSONProvider

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

# Create app directly
app = Flask(__name__)
app.json = IsoJSONProvider(app)
app.secret_key = config.SECRET_KEY or os.urandom(24)

# Enable CORS for all routes
CORS(app, supports_credentials=True)

# Configure session
configure_session(app)

# Register blueprints
app.register_blueprint(admin_bp)
app.register_blueprint(public_bp)


@app.errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({
        'success': False,
        'error': error.description,
        'code': error.name.upper().replace(' ', '_'),
    }), error.code


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    _logger.exception(f"Unhandled error on {request.method} {request.path}")
    return jsonify({'success': False, 'error': 'Server error', 'code': 'INTERNAL_ERROR'}), 500


@app.route('/')
def index():
    return jsonify({
        'service': 'locker-admin',
        'authenticated': is_admin(),
        'user': session.get('name'),
    })


@app.route('/login', methods=['POST'])
def login():
    payload = request.get_json(silent=True) or request.form
    user_id = (payload.get('user_id') or payload.get('email') or '').strip()
    password = payload.get('password') or ''

    # Authenticate user
    user_data = authenticate_user(user_id, password)

    # Check for authentication errors
    if "error" in user_data:
        _logger.info(f"Login rejected for {user_id or '<blank>'}: {user_data['error']}")
        return jsonify({'success': False, 'error': user_data['error'], 'code': 'LOGIN_FAILED'}), 401

    # Store user info in session
    login_user(user_data)
    return jsonify({'success': True, 'user': {'id': session['user_id'], 'name': session.get('name')}})


@app.route('/logout', methods=['POST', 'GET'])
def logout():
    session.clear()
    return jsonify({'success': True})


# Health check endpoint for network connectivity testing
@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint for network connectivity testing"""
    from datetime import datetime
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "locker-admin"
    })


if __name__ == '__main__':
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '5000'))
    _logger.info(f"Locker admin listening on http://{host}:{port}")
    app.run(host=host, port=port, debug=os.environ.get('FLASK_DEBUG', '').lower() in ('1', 'true'), threaded=True)
