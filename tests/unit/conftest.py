import pytest

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.models import UploadSession
from tests.unit.helpers import TEST_ENDPOINT


@pytest.fixture
def config() -> UploadConfig:
    """Config with no backoff delay so retries run instantly."""
    return UploadConfig(
        endpoint=TEST_ENDPOINT,
        max_retry_count=3,
        retry_base_delay=0,
        max_backoff_seconds=0,
    )


@pytest.fixture
def session() -> UploadSession:
    return UploadSession(bucket="bucket", key="big/object.bin", upload_id="upload-1")
