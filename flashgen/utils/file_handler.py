import os
import time
import asyncio
import pathlib
import tempfile
from typing import Iterable, Optional

from flashgen.utils.logger import get_logger

LOG = get_logger()

UPLOAD_CHUNK_SIZE = 1024 * 1024


class FileValidationError(Exception):
    """Raised when an uploaded file breaks a size or type constraint."""

    def __init__(self, error: str, message: str):
        super().__init__(message)
        self.error = error
        self.message = message


def normalize_mime(content_type: Optional[str]) -> str:
    # 'audio/webm;codecs=opus' -> 'audio/webm'
    return (content_type or '').split(';', 1)[0].strip().lower()


class FileHandler:
    def __init__(self, upload_dir: str, max_file_size: int):
        self.upload_dir = os.path.abspath(upload_dir)
        self.max_file_size = max_file_size
        pathlib.Path(self.upload_dir).mkdir(parents=True, exist_ok=True)
        LOG.info('FileHandler initialized', extra={'upload_dir': self.upload_dir, 'max_file_size': max_file_size})

    def validate_type(self, content_type: Optional[str], allowed: Iterable[str], message: str):
        if normalize_mime(content_type) not in set(allowed):
            raise FileValidationError('Invalid file type', message)

    async def save_upload(self, upload) -> str:
        """Stream an UploadFile to the upload dir, enforcing the size limit while writing."""
        suffix = pathlib.Path(upload.filename or '').suffix
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=self.upload_dir)
        local_path = tmp.name
        written = 0
        try:
            with tmp:
                while True:
                    chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_file_size:
                        raise FileValidationError('File too large', f'File exceeds maximum size of {self.max_file_size // (1024 * 1024)}MB')
                    tmp.write(chunk)
        except Exception:
            self.cleanup_temp_file(local_path)
            raise
        if written == 0:
            self.cleanup_temp_file(local_path)
            raise FileValidationError('Empty file', 'Uploaded file is empty')
        LOG.debug('upload_saved', extra={'path': local_path, 'size': written})
        return local_path

    def get_file_size(self, file_path: str) -> int:
        if not os.path.exists(file_path):
            raise FileNotFoundError(file_path)
        return os.path.getsize(file_path)

    def _inside_upload_dir(self, file_path: str) -> bool:
        return os.path.commonpath([os.path.abspath(file_path), self.upload_dir]) == self.upload_dir

    def cleanup_temp_file(self, file_path: str):
        try:
            if file_path and os.path.exists(file_path) and self._inside_upload_dir(file_path):
                os.remove(file_path)
                LOG.debug('Removed temp file', extra={'file': file_path})
        except Exception:
            LOG.exception('Failed to cleanup temp file', exc_info=True)

    def sweep_stale_files(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        now = now if now is not None else time.time()
        removed = 0
        for entry in os.scandir(self.upload_dir):
            try:
                if entry.is_file() and now - entry.stat().st_mtime > max_age_seconds:
                    os.remove(entry.path)
                    removed += 1
            except OSError:
                LOG.warning('sweep_remove_failed', extra={'file': entry.path})
        if removed:
            LOG.info('upload_sweep', extra={'removed': removed, 'upload_dir': self.upload_dir})
        return removed

    async def run_periodic_cleanup(self, interval_seconds: float, max_age_seconds: float):
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await asyncio.to_thread(self.sweep_stale_files, max_age_seconds)
            except Exception:
                LOG.exception('upload_sweep_failed', exc_info=True)
