import os
import logging
import firebase_admin
from firebase_admin import credentials, firestore, storage
from . import config

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

_client = None


def _resolve_credentials_path():
    # Preferred config path under /config/credentials
    config_credentials_path = os.path.join(config.PROJECT_ROOT, 'config', 'credentials', 'firebaseAdminKey.json')
    default_path = os.path.join(config.PROJECT_ROOT, 'firebaseAdminKey.json')
    cwd_path = os.path.join(os.getcwd(), 'firebaseAdminKey.json')

    path = config.FIREBASE_ADMIN_KEY_PATH
    if path and os.path.isfile(path):
        return path
    for candidate in (config_credentials_path, default_path, cwd_path):
        if os.path.isfile(candidate):
            return candidate
    # Last resort: write JSON from env to config path
    if config.FIREBASE_ADMIN_KEY_JSON:
        os.makedirs(os.path.dirname(config_credentials_path), exist_ok=True)
        with open(config_credentials_path, 'w', encoding='utf-8') as f:
            f.write(config.FIREBASE_ADMIN_KEY_JSON)
        return config_credentials_path
    raise FileNotFoundError(
        'Firebase credentials not found. Set GOOGLE_APPLICATION_CREDENTIALS, '
        'FIREBASE_ADMIN_KEY_PATH or FIREBASE_ADMIN_KEY_JSON.'
    )


def initialize_firebase():
    """Initialize Firebase Admin SDK with the provided credentials"""
    if not firebase_admin._apps:
        path = _resolve_credentials_path()
        options = {}
        if config.FIREBASE_STORAGE_BUCKET:
            options['storageBucket'] = config.FIREBASE_STORAGE_BUCKET
        firebase_admin.initialize_app(credentials.Certificate(path), options)
        _logger.info('Firebase initialized with credentials from %s', path)
    return firestore.client()


def get_db():
    """Return the shared Firestore client, initializing Firebase on first use."""
    global _client
    if _client is None:
        _client = initialize_firebase()
    return _client


def get_storage_bucket():
    """Get Firebase Storage bucket"""
    return storage.bucket()
