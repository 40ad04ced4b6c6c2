import base64
import logging
import uuid
from datetime import datetime
from urllib.parse import unquote, urlparse
from ..database import get_storage_bucket

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

STORAGE_HOST = "storage.googleapis.com"


def to_data_url(image_bytes, content_type="image/png"):
    return f"data:{content_type};base64,{base64.b64encode(image_bytes).decode('utf-8')}"


def upload_signature_to_storage(image_bytes, folder_name="signatures"):
    """
    Upload a PNG signature to Firebase Storage and return its public URL.
    If the Storage bucket is not available or the upload fails (e.g., 404 bucket not found),
    fall back to returning a base64 data URL of the image so the signature can still be
    stored on the assignment document.

    Args:
        image_bytes: PNG bytes exported from the signature pad
        folder_name: The folder name in storage (default: "signatures")

    Returns:
        tuple: (is_public_url: bool, url_or_data_url: str)
    """
    try:
        bucket = get_storage_bucket()
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        unique_filename = f"{folder_name}/{timestamp}_{uuid.uuid4().hex[:8]}.png"

        blob = bucket.blob(unique_filename)
        blob.upload_from_string(image_bytes, content_type="image/png")
        blob.make_public()
        return True, blob.public_url
    except Exception as e:
        _logger.warning("Signature upload to storage failed, storing inline instead: %s", str(e))
        return False, to_data_url(image_bytes)


def _blob_path(image_url):
    # https://storage.googleapis.com/<bucket>/<path>
    parsed = urlparse(image_url)
    if parsed.netloc != STORAGE_HOST:
        return None
    parts = unquote(parsed.path).lstrip('/').split('/', 1)
    return parts[1] if len(parts) == 2 and parts[1] else None


def delete_image_from_storage(image_url):
    """
    Remove a stored signature image. Inline data URLs have nothing to delete.
    Returns True when nothing is left behind in the bucket.
    """
    if not image_url or image_url.startswith('data:image'):
        return True
    blob_path = _blob_path(image_url)
    if blob_path is None:
        _logger.warning(f"Not a Firebase Storage URL, leaving it alone: {image_url}")
        return False
    try:
        get_storage_bucket().blob(blob_path).delete()
        return True
    except Exception as e:
        _logger.error(f"Error deleting signature image {blob_path}: {str(e)}")
        return False
