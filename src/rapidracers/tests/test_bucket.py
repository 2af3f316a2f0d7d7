"""
Tests for the object store gateway
"""

import base64
import json
from unittest import TestCase
from unittest.mock import patch

from google.api_core.exceptions import Forbidden

from rapidracers.bucket import ObjectStore, decode_data_url, encode_data_url
from rapidracers.errors import NotFoundError, UpstreamError, ValidationError
from rapidracers.tests.fakes import FakeStorageClient


class DataUrlTest(TestCase):
    """Test data URL helpers"""

    def test_decode(self):
        """Test the base64 payload is decoded"""
        url = 'data:image/png;base64,' + base64.b64encode(b'\x89PNG-bytes').decode('ascii')

        self.assertEqual(decode_data_url(url), b'\x89PNG-bytes')

    def test_decode_rejects_non_data_urls(self):
        """Test malformed payloads raise ValidationError"""
        for bad in (None, 42, 'https://example.com/a.png', 'data:image/png;base64,@@@'):
            with self.assertRaises(ValidationError):
                decode_data_url(bad, 'bodyImageData')

    def test_encode(self):
        """Test bytes are wrapped with their content type"""
        self.assertEqual(encode_data_url(b'abc', 'image/png'), 'data:image/png;base64,YWJj')


class ObjectStoreTest(TestCase):
    """Test ObjectStore against a fake bucket"""

    def setUp(self):
        self.client = FakeStorageClient()
        self.store = ObjectStore(self.client, 'racers-bucket')
        self.bucket = self.client.bucket('racers-bucket')

    def test_upload_returns_public_url(self):
        """Test uploads land at the path and return the public URL"""
        url = self.store.upload('1/7/car.json', b'{}', 'application/json')

        self.assertEqual(url, 'https://storage.googleapis.com/racers-bucket/1/7/car.json')
        self.assertEqual(self.bucket.objects['1/7/car.json'], (b'{}', 'application/json'))

    def test_path_from_url(self):
        """Test scheme, host and bucket prefix are stripped"""
        self.assertEqual(self.store.path_from_url(
            'https://storage.googleapis.com/racers-bucket/1/7/preview.png'), '1/7/preview.png')
        self.assertEqual(self.store.path_from_url('1/7/preview.png'), '1/7/preview.png')

    def test_download_missing_object(self):
        """Test a missing object raises NotFoundError"""
        with self.assertRaises(NotFoundError):
            self.store.download(self.store.public_url('nope.png'))

    def test_download_as_data_url(self):
        """Test stored images come back as data URLs"""
        url = self.store.upload('1/7/preview.png', b'img', 'image/png')

        self.assertEqual(self.store.download_as_data_url(url), 'data:image/png;base64,aW1n')

    def test_download_as_data_url_degrades_to_none(self):
        """Test empty URLs and missing objects yield None"""
        self.assertIsNone(self.store.download_as_data_url(''))
        self.assertIsNone(self.store.download_as_data_url(None))
        self.assertIsNone(self.store.download_as_data_url(self.store.public_url('missing.png')))

    def test_download_json(self):
        """Test JSON documents are parsed, and bad ones yield None"""
        good = self.store.upload('a.json', json.dumps({'carName': 'Zoom'}).encode(), 'application/json')
        bad = self.store.upload('b.json', b'not json', 'application/json')

        self.assertEqual(self.store.download_json(good), {'carName': 'Zoom'})
        self.assertIsNone(self.store.download_json(bad))

    def test_download_many_keeps_order(self):
        """Test batch downloads return results in input order"""
        first = self.store.upload('1.png', b'one', 'image/png')
        second = self.store.upload('2.png', b'two', 'image/png')

        results = self.store.download_many_as_data_urls([second, None, first])

        self.assertEqual(results, [encode_data_url(b'two'), None, encode_data_url(b'one')])

    def test_upload_failure_is_upstream_error(self):
        """Test storage API failures surface as UpstreamError"""
        with patch.object(self.bucket, 'blob') as mock_blob:
            mock_blob.return_value.upload_from_string.side_effect = Forbidden('denied')
            with self.assertRaises(UpstreamError):
                self.store.upload('x.png', b'x', 'image/png')
