"""
Document storage for generated PDFs and uploaded files.

Files live in Django's default storage. They are never exposed directly:
clients receive signed, expiring URLs that resolve through the
`files/<token>/` endpoint.
"""
import base64
import binascii
import logging

from django.conf import settings
from django.core import signing
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.urls import reverse

from .exceptions import TradePortalError

logger = logging.getLogger(__name__)

SIGNING_SALT = 'tradeportal.storage'


def save_document(path, content):
    """Store bytes under `path` and return the stored name (storage may rename on collision)."""
    if isinstance(content, str):
        content = content.encode('utf-8')
    stored = default_storage.save(path, ContentFile(content))
    logger.info(f"Stored document {stored} ({len(content)} bytes)")
    return stored


def save_base64_document(path, encoded):
    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise TradePortalError('Document content is not valid base64')
    return save_document(path, content)


def signed_url(path, request=None, ttl=None):
    """Signed download URL for a stored file. `ttl` is checked when the URL is used."""
    if not path:
        return None
    token = signing.dumps({'path': path, 'ttl': ttl or settings.SIGNED_URL_TTL_SECONDS}, salt=SIGNING_SALT)
    url = reverse('signed-file-download', kwargs={'token': token})
    if request is not None:
        return request.build_absolute_uri(url)
    return url


def resolve_signed_path(token):
    """Return the storage path for a signed token; raises TradePortalError if invalid or expired."""
    try:
        payload = signing.loads(token, salt=SIGNING_SALT)
    except signing.BadSignature:
        raise TradePortalError('Invalid file link')
    try:
        signing.loads(token, salt=SIGNING_SALT, max_age=payload.get('ttl', settings.SIGNED_URL_TTL_SECONDS))
    except signing.SignatureExpired:
        raise TradePortalError('File link has expired')
    return payload['path']
