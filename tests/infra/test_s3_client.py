"""Tests for S3 object store."""

import io
from unittest.mock import MagicMock, patch

import pytest

from exports_rw.infra.storage.client import StorageError
from exports_rw.infra.storage.s3_client import S3ObjectStore


class _ClientError(Exception):
    """Stand-in for botocore's ClientError carrying a response dict."""

    def __init__(self, code: str) -> None:
        super().__init__(f"An error occurred ({code})")
        self.response = {"Error": {"Code": code}}


class TestS3ObjectStore:
    """Test S3ObjectStore implementation."""

    @pytest.fixture
    def mock_s3(self):
        """Mock boto3 S3 client."""
        mock_client = MagicMock()
        with patch.object(S3ObjectStore, "_build_client", return_value=mock_client):
            yield mock_client

    @pytest.fixture
    def mock_settings(self):
        """Create mock settings for S3."""
        settings = MagicMock()
        settings.S3_BUCKET = "test-bucket"
        settings.S3_ENDPOINT_URL = "http://localhost:9000"
        settings.S3_REGION = "us-east-1"
        settings.S3_ACCESS_KEY_ID = "test-key"
        settings.S3_SECRET_ACCESS_KEY = "test-secret"
        settings.S3_USE_SSL = False
        settings.S3_ADDRESSING_STYLE = "path"
        settings.EXPORT_WORKERS = 10
        return settings

    @pytest.fixture
    def store(self, mock_s3, mock_settings):
        """Create S3ObjectStore with mocked boto3."""
        return S3ObjectStore(settings=mock_settings)

    def test_requires_bucket(self, mock_settings):
        mock_settings.S3_BUCKET = None
        with pytest.raises(StorageError, match="S3_BUCKET"):
            S3ObjectStore(settings=mock_settings, client=MagicMock())

    def test_put_object(self, store, mock_s3):
        store.put_object(
            key="content/a_2017-09-10.json",
            body=b"{}",
            content_type="application/json",
            metadata={"transaction_id": "tid_1"},
        )

        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="content/a_2017-09-10.json",
            Body=b"{}",
            ContentType="application/json",
            Metadata={"transaction_id": "tid_1"},
        )

    def test_put_object_omits_empty_headers(self, store, mock_s3):
        store.put_object(key="k", body=b"x")

        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket", Key="k", Body=b"x"
        )

    def test_put_object_error(self, store, mock_s3):
        mock_s3.put_object.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to put object"):
            store.put_object(key="k", body=b"x")

    def test_get_object(self, store, mock_s3):
        mock_s3.get_object.return_value = {
            "Body": io.BytesIO(b"payload"),
            "ContentType": "application/json",
            "Metadata": {"transaction_id": "tid_1"},
        }

        obj = store.get_object(key="k")

        assert obj is not None
        assert obj.key == "k"
        assert obj.content_type == "application/json"
        assert obj.metadata == {"transaction_id": "tid_1"}
        assert obj.read_all() == b"payload"

    @pytest.mark.parametrize("code", ["NoSuchKey", "NotFound", "404"])
    def test_get_missing_object_returns_none(self, store, mock_s3, code):
        mock_s3.get_object.side_effect = _ClientError(code)

        assert store.get_object(key="k") is None

    def test_get_object_error(self, store, mock_s3):
        mock_s3.get_object.side_effect = _ClientError("AccessDenied")

        with pytest.raises(StorageError, match="Failed to get object"):
            store.get_object(key="k")

    def test_delete_object(self, store, mock_s3):
        store.delete_object(key="k")

        mock_s3.delete_object.assert_called_once_with(Bucket="test-bucket", Key="k")

    def test_delete_object_error(self, store, mock_s3):
        mock_s3.delete_object.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to delete object"):
            store.delete_object(key="k")

    def test_iter_key_pages(self, store, mock_s3):
        paginator = mock_s3.get_paginator.return_value
        paginator.paginate.return_value = iter(
            [
                {"Contents": [{"Key": "a/1"}, {"Key": "a/2"}]},
                {"Contents": [{"Key": "a/3"}]},
            ]
        )

        pages = list(store.iter_key_pages(prefix="a/", page_size=2))

        assert pages == [["a/1", "a/2"], ["a/3"]]
        mock_s3.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(
            Bucket="test-bucket",
            Prefix="a/",
            PaginationConfig={"PageSize": 2},
        )

    def test_iter_key_pages_empty_listing(self, store, mock_s3):
        mock_s3.get_paginator.return_value.paginate.return_value = iter([{}])

        assert list(store.iter_key_pages()) == [[]]
        mock_s3.get_paginator.return_value.paginate.assert_called_once_with(
            Bucket="test-bucket"
        )

    def test_iter_key_pages_is_lazy(self, store, mock_s3):
        served = []

        def pages():
            for n in range(3):
                served.append(n)
                yield {"Contents": [{"Key": f"a/{n}"}]}

        mock_s3.get_paginator.return_value.paginate.return_value = pages()

        listing = store.iter_key_pages(prefix="a/")
        assert next(listing) == ["a/0"]
        listing.close()

        assert served == [0]

    def test_iter_key_pages_error(self, store, mock_s3):
        def pages():
            yield {"Contents": [{"Key": "a/1"}]}
            raise Exception("connection reset")

        mock_s3.get_paginator.return_value.paginate.return_value = pages()

        listing = store.iter_key_pages(prefix="a/")
        assert next(listing) == ["a/1"]
        with pytest.raises(StorageError, match="Failed to list objects"):
            next(listing)

    def test_head_exists(self, store, mock_s3):
        assert store.head_exists(key="k") is True
        mock_s3.head_object.assert_called_once_with(Bucket="test-bucket", Key="k")

    def test_head_missing(self, store, mock_s3):
        mock_s3.head_object.side_effect = _ClientError("404")

        assert store.head_exists(key="k") is False

    def test_head_error(self, store, mock_s3):
        mock_s3.head_object.side_effect = _ClientError("500")

        with pytest.raises(StorageError):
            store.head_exists(key="k")

    def test_check_access(self, store, mock_s3):
        store.check_access()

        mock_s3.head_bucket.assert_called_once_with(Bucket="test-bucket")

    def test_check_access_error(self, store, mock_s3):
        mock_s3.head_bucket.side_effect = Exception("no route to host")

        with pytest.raises(StorageError, match="Cannot access bucket test-bucket"):
            store.check_access()
