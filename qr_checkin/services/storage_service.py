import os
import uuid
import logging
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

GUEST_IMAGES = 'guest-images'
PROFILE_AVATARS = 'profile-avatars'

ALLOWED_IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def validate_image(file_obj):
    """
    Check an uploaded file is an image no larger than 5MB.

    Returns:
        None if valid, otherwise an error message for the user
    """
    if not file_obj or not file_obj.filename:
        return 'No file selected'

    ext = file_obj.filename.rsplit('.', 1)[-1].lower() if '.' in file_obj.filename else ''
    content_type = file_obj.content_type or ''
    if ext not in ALLOWED_IMAGE_EXTENSIONS or not content_type.startswith('image/'):
        return 'Please select an image file (JPG, PNG, GIF or WebP)'

    file_obj.seek(0, os.SEEK_END)
    size = file_obj.tell()
    file_obj.seek(0)
    if size > MAX_IMAGE_BYTES:
        return 'Image size must be less than 5MB'
    return None


class StorageService:
    """Guest photos and staff avatars in an S3-compatible bucket (Cloudflare R2)."""

    def __init__(self):
        self.s3_client = None
        self.bucket_name = None
        self.public_domain = None

    def init_app(self, app):
        """Configure from app config, falling back to R2_* environment variables."""
        def setting(name):
            return app.config.get(name) or os.environ.get(name)

        self.bucket_name = setting('R2_BUCKET_NAME')
        self.public_domain = setting('R2_PUBLIC_DOMAIN')
        account_id = setting('R2_ACCOUNT_ID')
        access_key = setting('R2_ACCESS_KEY_ID')
        secret_key = setting('R2_SECRET_ACCESS_KEY')

        self.s3_client = None
        if all([self.bucket_name, account_id, access_key, secret_key]):
            try:
                self.s3_client = boto3.client(
                    's3',
                    endpoint_url=f'https://{account_id}.r2.cloudflarestorage.com',
                    aws_access_key_id=access_key,
                    aws_secret_access_key=secret_key,
                    region_name='auto'  # R2 requires a region, 'auto' is usually fine
                )
            except (BotoCoreError, ValueError) as e:
                logger.error(f"Failed to initialize R2 client: {e}")

    def is_configured(self):
        return self.s3_client is not None

    def _key_from_url(self, file_url):
        key = file_url
        if self.public_domain and file_url.startswith(self.public_domain):
            key = file_url.replace(f"{self.public_domain.rstrip('/')}/", "", 1)
        if key.startswith('http'):
            key = urlparse(key).path.lstrip('/')
        return key

    def upload_file(self, file_obj, folder=GUEST_IMAGES):
        """
        Upload a file-like object under `folder` with a generated name.

        Returns:
            The public URL, or the object key if no public domain is set.
            None if the client is not configured or the upload failed.
        """
        if not self.s3_client:
            logger.error("R2 client not initialized. Check environment variables.")
            return None

        original_filename = secure_filename(file_obj.filename or '')
        extension = os.path.splitext(original_filename)[1].lower()
        key = f"{folder}/{uuid.uuid4()}{extension}"

        try:
            file_obj.seek(0)
            self.s3_client.upload_fileobj(
                file_obj,
                self.bucket_name,
                key,
                ExtraArgs={'ContentType': file_obj.content_type or 'application/octet-stream'}
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error uploading file to R2: {e}")
            return None

        if self.public_domain:
            return f"{self.public_domain.rstrip('/')}/{key}"
        return key

    def delete_file(self, file_url):
        """Delete an object given its public URL or key."""
        if not self.s3_client:
            logger.error("R2 client not initialized.")
            return False

        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=self._key_from_url(file_url)
            )
            return True
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting file from R2: {e}")
            return False

    def get_presigned_url(self, key, expiration=3600):
        """Generate a presigned URL to share an object."""
        if not self.s3_client:
            return None
        try:
            return self.s3_client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket_name, 'Key': self._key_from_url(key)},
                ExpiresIn=expiration
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error generating presigned URL: {e}")
            return None

    def resolve_url(self, stored):
        """URL a browser can load for a stored key or URL."""
        if not stored:
            return None
        if stored.startswith('http'):
            return stored
        return self.get_presigned_url(stored) or stored


storage_service = StorageService()
