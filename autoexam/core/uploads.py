"""
PDF upload storage on the local filesystem
"""
import logging
import os
import random
import time

from werkzeug.utils import secure_filename

from .errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'pdf'}
PDF_MAGIC = b'%PDF-'


def allowed_file(filename, extensions=ALLOWED_EXTENSIONS):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in extensions


class UploadStore:
    def __init__(self, folder, url_prefix='/uploads'):
        self.folder = folder
        self.url_prefix = url_prefix.rstrip('/')
        os.makedirs(self.folder, exist_ok=True)

    def _unique_name(self, prefix):
        millis = int(time.time() * 1000)
        return f"{prefix}-{millis}-{random.randint(0, 999999999):09d}.pdf"

    def save_pdf(self, file, prefix):
        """Validate and store an uploaded PDF, returning its public URL"""
        if file is None or not file.filename:
            raise ValidationError('No file uploaded')

        filename = secure_filename(file.filename)
        if not allowed_file(filename) or file.mimetype != 'application/pdf':
            raise ValidationError('Only PDF files are allowed')

        head = file.stream.read(len(PDF_MAGIC))
        file.stream.seek(0)
        if head != PDF_MAGIC:
            raise ValidationError('Only PDF files are allowed')

        name = self._unique_name(prefix)
        file.save(os.path.join(self.folder, name))
        logger.info(f"Stored upload {name} (original name {filename})")
        return f"{self.url_prefix}/{name}"

    def path_for(self, url):
        """Filesystem path behind a stored URL, or None for foreign URLs"""
        if not url or not url.startswith(self.url_prefix + '/'):
            return None
        name = secure_filename(url[len(self.url_prefix) + 1:])
        if not name:
            return None
        return os.path.join(self.folder, name)

    def delete(self, url):
        """Remove a stored file; failures are logged, never raised"""
        path = self.path_for(url)
        if not path:
            return False
        try:
            os.remove(path)
            return True
        except OSError as e:
            logger.warning(f"Could not delete upload {path}: {e}")
            return False
