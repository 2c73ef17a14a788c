"""
File uploads for material files and avatars.

Files go through Django's ``default_storage`` (local media in development,
any configured storage backend in production). Every upload is checked
against the MIME types allowed for its kind and the size limit before it is
saved.
"""
import logging
import re
import uuid

from django.core.files.storage import default_storage

from backend.exceptions import ServiceError

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE = 25 * 1024 * 1024  # 25MB

IMAGE_TYPES = ['image/jpeg', 'image/png', 'image/gif', 'image/webp']
DOCUMENT_TYPES = [
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'text/plain',
]
VIDEO_TYPES = ['video/mp4', 'video/avi', 'video/mov', 'video/quicktime', 'video/wmv', 'video/webm']
AUDIO_TYPES = ['audio/mp3', 'audio/mpeg', 'audio/wav', 'audio/m4a', 'audio/aac']

ALLOWED_TYPES = {
    'image': IMAGE_TYPES,
    'document': DOCUMENT_TYPES,
    'video': VIDEO_TYPES,
    'audio': AUDIO_TYPES,
    'general': IMAGE_TYPES + DOCUMENT_TYPES + ['video/mp4', 'audio/mp3', 'audio/mpeg'],
}

# Upload kind expected for each material type
MATERIAL_UPLOAD_KINDS = {
    'PDF': 'document',
    'VIDEO': 'video',
    'AUDIO': 'audio',
}


class UploadError(ServiceError):
    default_message = 'File could not be uploaded'


def safe_filename(name):
    cleaned = re.sub(r'[^a-zA-Z0-9.-]', '_', name or '')
    return cleaned[-100:] or 'file'


def validate_upload(uploaded_file, kind):
    if kind not in ALLOWED_TYPES:
        raise UploadError(
            f"Unknown upload type '{kind}'",
            details={'allowed_types': sorted(ALLOWED_TYPES)}
        )
    if uploaded_file.size > MAX_UPLOAD_SIZE:
        raise UploadError(
            f'File size must be less than {MAX_UPLOAD_SIZE // (1024 * 1024)}MB',
            details={'file_size_mb': round(uploaded_file.size / (1024 * 1024), 2)}
        )
    mime_type = (uploaded_file.content_type or '').lower()
    if mime_type not in ALLOWED_TYPES[kind]:
        raise UploadError(
            f'Invalid file type for {kind}',
            details={'mime_type': mime_type, 'allowed': ALLOWED_TYPES[kind]}
        )


def store_upload(uploaded_file, kind='general', folder='uploads'):
    """
    Validate and save ``uploaded_file`` under ``<folder>/<kind>/``.

    Returns the stored path, the storage URL and the file metadata.
    """
    validate_upload(uploaded_file, kind)

    storage_path = f"{folder}/{kind}/{uuid.uuid4()}-{safe_filename(uploaded_file.name)}"
    saved_path = default_storage.save(storage_path, uploaded_file)
    logger.info(f"File uploaded: {saved_path} ({uploaded_file.size} bytes)")

    return {
        'path': saved_path,
        'url': default_storage.url(saved_path),
        'file_name': uploaded_file.name,
        'file_size': uploaded_file.size,
        'mime_type': uploaded_file.content_type,
        'type': kind,
    }
