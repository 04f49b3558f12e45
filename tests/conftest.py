import io
import os
import tempfile
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from webcache.storage import LocalFileStorage, S3Storage

DATA_DIR = os.path.join(os.path.dirname(__file__), 'data')

REASONS = {
    200: 'OK',
    304: 'Not Modified',
    404: 'Not Found',
    500: 'Internal Server Error',
}


class RawBody(io.BytesIO):
    """Stands in for urllib3's HTTPResponse behind requests' Response.raw"""
    version = 11


def make_response(status_code=200, body=b'', headers=None):
    """Mock requests.Response for a streamed GET."""
    response = Mock()
    response.status_code = status_code
    response.reason = REASONS.get(status_code, 'Unknown')
    response.headers = dict(headers or {})
    response.raw = RawBody(body)
    response.iter_content.side_effect = lambda chunk_size=1: iter(lambda: response.raw.read(chunk_size), b'')
    return response


@pytest.fixture
def response_factory():
    """Builds mock responses, see make_response()."""
    return make_response


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def local_storage():
    """Create a LocalFileStorage instance for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield LocalFileStorage(tmpdir)


@pytest.fixture
def s3_storage():
    """Create an S3Storage instance for testing."""
    bucket_name = 'test-webcache-bucket'
    with mock_aws():
        client = boto3.client('s3', region_name='us-east-1')
        client.create_bucket(Bucket=bucket_name)
        yield S3Storage(bucket_name, region_name='us-east-1')


@pytest.fixture(params=['local', 's3'])
def storage(request, local_storage, s3_storage):
    """Parametrized fixture that provides both storage backends."""
    return local_storage if request.param == 'local' else s3_storage
