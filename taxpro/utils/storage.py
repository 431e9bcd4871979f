"""
Local directory storage for uploaded documents.
"""

from flask import current_app
from werkzeug.datastructures import FileStorage
from typing import List, Optional
import logging
import os
import uuid

logger = logging.getLogger(__name__)


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot; '' when there is none."""
    _, ext = os.path.splitext(filename or '')
    return ext[1:].lower()


def file_size(upload: FileStorage) -> int:
    """Size of an uploaded file in bytes, leaving the stream rewound."""
    stream = upload.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


class LocalFileStore:
    """Stores files under one directory with randomized names."""

    def __init__(self, root: str, field_name: str = 'documents'):
        self.root = root
        self.field_name = field_name

    @classmethod
    def from_config(cls) -> 'LocalFileStore':
        return cls(current_app.config['UPLOAD_FOLDER'])

    @property
    def allowed_extensions(self) -> List[str]:
        return [ext.strip().lower() for ext in current_app.config['ALLOWED_FILE_TYPES'].split(',') if ext.strip()]

    def is_allowed(self, filename: str) -> bool:
        return file_extension(filename) in self.allowed_extensions

    def save(self, upload: FileStorage) -> str:
        """Write the upload to disk and return its path."""
        os.makedirs(self.root, exist_ok=True)
        ext = file_extension(upload.filename)
        name = f'{self.field_name}-{uuid.uuid4().hex}' + (f'.{ext}' if ext else '')
        path = os.path.join(self.root, name)
        upload.save(path)
        logger.debug(f"Stored upload {upload.filename!r} as {path}")
        return path

    @staticmethod
    def exists(path: Optional[str]) -> bool:
        return bool(path) and os.path.isfile(path)

    @staticmethod
    def delete(path: Optional[str]) -> bool:
        """Remove a stored file. Failures are logged, never raised."""
        if not path:
            return False
        try:
            os.remove(path)
            return True
        except OSError as e:
            logger.warning(f"Could not delete stored file {path}: {e}")
            return False

    def delete_all(self, paths: List[str]) -> None:
        for path in paths:
            self.delete(path)
