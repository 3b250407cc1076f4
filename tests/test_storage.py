"""
Tests for blob storage backends (services/storage)
"""
import os
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

import config
from services.storage import BlobNotFoundError, LocalBlobStore, S3BlobStore, get_blob_store


def _client_error(code, operation='GetObject'):
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


@pytest.mark.unit
class TestLocalBlobStore:

    def test_put_get(self, blob_store):
        blob_store.put('abc.png', b'data', 'image/png')
        assert blob_store.get('abc.png') == b'data'
        assert blob_store.exists('abc.png') is True

    def test_overwrite(self, blob_store):
        blob_store.put('abc.png', b'one')
        blob_store.put('abc.png', b'two')
        assert blob_store.get('abc.png') == b'two'

    def test_no_temp_files_left(self, blob_store):
        blob_store.put('abc.png', b'data')
        assert os.listdir(blob_store.root) == ['abc.png']

    def test_missing(self, blob_store):
        with pytest.raises(BlobNotFoundError):
            blob_store.get('missing.png')
        assert blob_store.exists('missing.png') is False

    def test_blob_not_found_is_key_error(self):
        assert issubclass(BlobNotFoundError, KeyError)

    def test_delete_idempotent(self, blob_store):
        blob_store.put('abc.png', b'data')
        blob_store.delete('abc.png')
        blob_store.delete('abc.png')
        assert blob_store.exists('abc.png') is False

    @pytest.mark.parametrize("key", ['', '../escape.png', '/abs.png', 'a/../../b'])
    def test_invalid_keys(self, blob_store, key):
        with pytest.raises(ValueError):
            blob_store.put(key, b'x')

    def test_url(self, temp_dir):
        store = LocalBlobStore(temp_dir, public_url='http://cdn.local/')
        assert store.url('abc.png') == 'http://cdn.local/abc.png'


@pytest.mark.unit
class TestS3BlobStore:

    def test_put(self):
        client = MagicMock()
        store = S3BlobStore('bucket', client=client)
        store.put('abc.png', b'data', 'image/png')
        client.put_object.assert_called_once_with(
            Bucket='bucket', Key='abc.png', Body=b'data', ContentType='image/png'
        )

    def test_get(self):
        client = MagicMock()
        client.get_object.return_value = {'Body': MagicMock(read=MagicMock(return_value=b'data'))}
        assert S3BlobStore('bucket', client=client).get('abc.png') == b'data'

    def test_get_missing(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error('NoSuchKey')
        with pytest.raises(BlobNotFoundError):
            S3BlobStore('bucket', client=client).get('abc.png')

    def test_get_other_error_propagates(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error('AccessDenied')
        with pytest.raises(ClientError):
            S3BlobStore('bucket', client=client).get('abc.png')

    def test_exists(self):
        client = MagicMock()
        store = S3BlobStore('bucket', client=client)
        assert store.exists('abc.png') is True
        client.head_object.side_effect = _client_error('404', 'HeadObject')
        assert store.exists('abc.png') is False

    def test_url(self):
        assert S3BlobStore('b', region='eu-west-1', client=MagicMock()).url('k.png') == \
            'https://b.s3.eu-west-1.amazonaws.com/k.png'
        assert S3BlobStore('b', endpoint_url='http://minio:9000/', client=MagicMock()).url('k.png') == \
            'http://minio:9000/b/k.png'
        assert S3BlobStore('b', public_url='https://img.example/', client=MagicMock()).url('k.png') == \
            'https://img.example/k.png'

    def test_bucket_required(self):
        with pytest.raises(ValueError):
            S3BlobStore('', client=MagicMock())

    def test_builds_boto3_client(self):
        with patch('services.storage.s3_store.boto3.client') as mock_client:
            S3BlobStore('bucket', region='us-west-2', endpoint_url='http://minio:9000',
                        access_key_id='id', secret_access_key='secret')
        mock_client.assert_called_once_with(
            's3', region_name='us-west-2', endpoint_url='http://minio:9000',
            aws_access_key_id='id', aws_secret_access_key='secret',
        )


@pytest.mark.unit
class TestGetBlobStore:

    def test_local(self, temp_dir, monkeypatch):
        monkeypatch.setattr(config, 'BLOB_STORE', 'local')
        monkeypatch.setattr(config, 'STORAGE_DIRECTORY', temp_dir)
        assert isinstance(get_blob_store(), LocalBlobStore)

    def test_s3(self, monkeypatch):
        monkeypatch.setattr(config, 'BLOB_STORE', 's3')
        monkeypatch.setattr(config, 'S3_BUCKET', 'bucket')
        with patch('services.storage.s3_store.boto3.client'):
            assert isinstance(get_blob_store(), S3BlobStore)

    def test_unknown(self, monkeypatch):
        monkeypatch.setattr(config, 'BLOB_STORE', 'ftp')
        with pytest.raises(ValueError):
            get_blob_store()
