import os
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient

# Set test environment variables BEFORE importing app modules
os.environ["TESTING"] = "true"

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "imgvault-test-bucket"
os.environ["DATABASE_URL"] = "sqlite://"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

from imgvault.main import app
from imgvault.storage.s3 import S3Service
from imgvault.storage.database import MetadataRepository
from imgvault.image_service.service import VersionedImageStore


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture(scope="function")
def s3_service(aws_credentials):
    with mock_aws():
        yield S3Service()


@pytest.fixture(scope="function")
def metadata_repo():
    repo = MetadataRepository(database_url="sqlite://")
    yield repo
    repo.close()


@pytest.fixture(scope="function")
def user(metadata_repo):
    return metadata_repo.create_user("alice")


@pytest.fixture(scope="function")
def image_store(metadata_repo, s3_service):
    return VersionedImageStore(db=metadata_repo, s3=s3_service)


@pytest.fixture(scope="function")
def test_client(metadata_repo, s3_service):
    # Replace the default services with the mocked ones
    app.state.s3 = s3_service
    app.state.db = metadata_repo

    with TestClient(app) as client:
        yield client
