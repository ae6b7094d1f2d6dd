# Uploaded image storage
import os
import time

from werkzeug.utils import secure_filename


class UploadStore:
    """Saves uploaded files to a local folder that is served under /images"""

    def __init__(self, folder):
        self.folder = folder

    def save(self, file):
        """Persist a werkzeug FileStorage and return (filename, path)"""
        os.makedirs(self.folder, exist_ok=True)
        original = secure_filename(file.filename or '') or 'upload'
        filename = f"{int(time.time() * 1000)}-{original}"
        path = os.path.join(self.folder, filename)
        file.save(path)
        return filename, path
