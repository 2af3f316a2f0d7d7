import base64
import binascii
import json
import logging
import mimetypes
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud import storage

from rapidracers import settings
from rapidracers.errors import NotFoundError, UpstreamError, ValidationError

logger = logging.getLogger('RapidRacers.bucket')


def decode_data_url(data_url, field='image'):
    """Return the bytes carried by a ``data:...;base64,`` URL."""
    if not isinstance(data_url, str) or 'base64,' not in data_url:
        raise ValidationError(f'{field} must be a base64 data URL')
    try:
        return base64.b64decode(data_url.split('base64,', 1)[1], validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(f'{field} is not valid base64')


def encode_data_url(data: bytes, content_type='image/png'):
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


class ObjectStore:
    """Path-addressed blobs in a single GCS bucket, exposed by public URL."""

    def __init__(self, client: storage.Client, bucket_name: str, public_root=None):
        self.client = client
        self.bucket_name = bucket_name
        self.public_root = (public_root or settings.STORAGE_PUBLIC_ROOT).rstrip('/')
        self.bucket = client.bucket(bucket_name)

    def public_url(self, path):
        return f"{self.public_root}/{self.bucket_name}/{path}"

    def path_from_url(self, url):
        """Strip scheme, host and bucket prefix from a URL issued by public_url."""
        parsed = urlparse(url)
        path = unquote(parsed.path).lstrip('/')
        if path.startswith(f'{self.bucket_name}/'):
            path = path[len(self.bucket_name) + 1:]
        return path

    def upload(self, path, data: bytes, content_type) -> str:
        try:
            self.bucket.blob(path).upload_from_string(data, content_type=content_type)
        except GoogleAPIError as e:
            raise UpstreamError(f'Failed to upload {path}: {e}')
        logger.info('Uploaded %s (%s bytes, %s)', path, len(data), content_type)
        return self.public_url(path)

    def download(self, url) -> bytes:
        if not url:
            raise NotFoundError('No object path given')
        path = self.path_from_url(url)
        try:
            return self.bucket.blob(path).download_as_bytes()
        except NotFound:
            raise NotFoundError(f'Object {path} not found')
        except GoogleAPIError as e:
            raise UpstreamError(f'Failed to download {path}: {e}')

    def download_as_data_url(self, url) -> Optional[str]:
        """Best effort: a missing or unreadable object yields None."""
        if not url:
            return None
        try:
            contents = self.download(url)
        except (NotFoundError, UpstreamError, ValueError) as e:
            logger.warning('Failed to download image from GCS: %s (%s)', url, e)
            return None
        content_type = mimetypes.guess_type(self.path_from_url(url))[0] or 'image/png'
        return encode_data_url(contents, content_type)

    def download_json(self, url):
        if not url:
            return None
        try:
            return json.loads(self.download(url).decode('utf-8'))
        except (NotFoundError, UpstreamError, ValueError) as e:
            logger.warning('Failed to download JSON document from GCS: %s (%s)', url, e)
            return None

    def download_many_as_data_urls(self, urls: Iterable[Optional[str]]) -> List[Optional[str]]:
        """Fetch several previews concurrently; results keep the input order."""
        urls = list(urls)
        if not urls:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(settings.DOWNLOAD_WORKERS, len(urls)))) as pool:
            return list(pool.map(self.download_as_data_url, urls))
