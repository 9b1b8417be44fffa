# backend/storage.py
"""Product image stores.

Two interchangeable backends share the same ``save``/``delete`` surface:
``LocalImageStore`` writes into the upload folder served under ``/uploads``,
``CloudinaryImageStore`` uploads through the Cloudinary SDK. Both return
``(public_url, ref)`` from ``save``; ``ref`` is what ``delete`` needs later.
"""
import os
import time
import random
from datetime import datetime

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from werkzeug.utils import secure_filename

from errors import StorageError

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
ALLOWED_MIMETYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def read_image(upload, max_size=MAX_FILE_SIZE):
    """Validate an uploaded ``FileStorage`` and return its bytes."""
    if upload.mimetype not in ALLOWED_MIMETYPES or not allowed_file(upload.filename or ''):
        raise StorageError('Invalid image type. Allowed types: png, jpg, jpeg, gif, webp.', 400)
    data = upload.read()
    if len(data) > max_size:
        raise StorageError('Image file too large. Maximum size is 5MB.', 400)
    return data


class LocalImageStore:
    def __init__(self, folder, url_prefix='/uploads'):
        self.folder = folder
        self.url_prefix = url_prefix.rstrip('/')
        os.makedirs(folder, exist_ok=True)

    def save(self, data, filename):
        base, ext = os.path.splitext(secure_filename(filename))
        filename = f"{base or 'image'}_{int(datetime.utcnow().timestamp() * 1000)}{ext.lower()}"
        try:
            with open(os.path.join(self.folder, filename), 'wb') as fh:
                fh.write(data)
        except OSError as e:
            raise StorageError(f'Image upload failed: {e}')
        return f'{self.url_prefix}/{filename}', filename

    def delete(self, ref):
        if not ref:
            return
        path = os.path.join(self.folder, secure_filename(ref))
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            raise StorageError(f'Image deletion failed: {e}')


class CloudinaryImageStore:
    transformation = [
        {'width': 800, 'height': 800, 'crop': 'limit'},
        {'quality': 'auto'},
    ]

    def __init__(self, cloud_name, api_key, api_secret, folder='makhana-products', timeout=30):
        if not (cloud_name and api_key and api_secret):
            raise StorageError('Cloudinary credentials not configured')
        self.credentials = {'cloud_name': cloud_name, 'api_key': api_key, 'api_secret': api_secret}
        self.folder = folder
        self.timeout = timeout

    def save(self, data, filename):
        public_id = f'product_{int(time.time() * 1000)}_{random.randint(0, 10 ** 9)}'
        try:
            result = cloudinary.uploader.upload(
                data,
                folder=self.folder,
                public_id=public_id,
                resource_type='image',
                transformation=self.transformation,
                timeout=self.timeout,
                **self.credentials,
            )
        except CloudinaryError as e:
            raise StorageError(f'Image upload failed: {e}')
        if 'secure_url' not in result:
            raise StorageError(f"Image upload failed: {result.get('error', result)}")
        return result['secure_url'], result['public_id']

    def delete(self, ref):
        if not ref:
            return
        try:
            cloudinary.uploader.destroy(ref, resource_type='image', timeout=self.timeout, **self.credentials)
        except CloudinaryError as e:
            raise StorageError(f'Image deletion failed: {e}')


def get_image_store(config):
    kind = config.get('IMAGE_STORAGE', 'local')
    if kind == 'cloudinary':
        return CloudinaryImageStore(
            config.get('CLOUDINARY_CLOUD_NAME'),
            config.get('CLOUDINARY_API_KEY'),
            config.get('CLOUDINARY_API_SECRET'),
        )
    if kind == 'local':
        return LocalImageStore(config['UPLOAD_FOLDER'])
    raise ValueError(f'Unknown IMAGE_STORAGE {kind!r}')
