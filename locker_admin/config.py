"""
Runtime configuration for the locker administration service.

All values are read from environment variables (optionally from a local .env
file) so the same code runs against production Firestore, the emulator, or a
developer project without edits.

Environment variables:
- SECRET_KEY: Flask session signing key (random per process when unset)
- SESSION_LIFETIME_MINUTES: admin session lifetime (default 30)
- GOOGLE_APPLICATION_CREDENTIALS / FIREBASE_ADMIN_KEY_PATH: service account file
- FIREBASE_ADMIN_KEY_JSON: service account JSON, written to config/credentials when no file exists
- FIREBASE_STORAGE_BUCKET: bucket used for signature images
- PUBLIC_BASE_URL: origin used to build shareable registration links
- SIGNATURE_DEFAULT_WIDTH / SIGNATURE_DEFAULT_HEIGHT: logical pad size
- SSE_KEEPALIVE_SECONDS: keep-alive interval on realtime streams
"""
import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))

SECRET_KEY = os.environ.get('SECRET_KEY')
SESSION_LIFETIME_MINUTES = int(os.environ.get('SESSION_LIFETIME_MINUTES', '30'))

FIREBASE_ADMIN_KEY_PATH = (
    os.environ.get('GOOGLE_APPLICATION_CREDENTIALS')
    or os.environ.get('FIREBASE_ADMIN_KEY_PATH')
)
FIREBASE_ADMIN_KEY_JSON = os.environ.get('FIREBASE_ADMIN_KEY_JSON')
FIREBASE_STORAGE_BUCKET = os.environ.get('FIREBASE_STORAGE_BUCKET')

PUBLIC_BASE_URL = os.environ.get('PUBLIC_BASE_URL', 'http://localhost:5000').rstrip('/')

SIGNATURE_DEFAULT_WIDTH = int(os.environ.get('SIGNATURE_DEFAULT_WIDTH', '400'))
SIGNATURE_DEFAULT_HEIGHT = int(os.environ.get('SIGNATURE_DEFAULT_HEIGHT', '200'))

SSE_KEEPALIVE_SECONDS = int(os.environ.get('SSE_KEEPALIVE_SECONDS', '30'))

# Firestore collection names
LOCKERS = 'lockers'
ASSIGNMENTS = 'assignments'
RESPONSES = 'responses'
SIGNATURES = 'signatures'
FORMS = 'forms'
USERS = 'users'
