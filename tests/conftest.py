import pytest
from fastapi.testclient import TestClient

from metastore import api
from metastore.projects.intake import IntakePipeline
from metastore.projects.store import ProjectStore
from tests.tools import metastore_settings

PUBLIC_URL = "http://metastore.test"
MAX_IMAGE_SIZE = 3 * 1024 * 1024


@pytest.fixture()
def storage_dir(tmp_path):
    return tmp_path / "storage"


@pytest.fixture()
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture()
def settings(storage_dir, upload_dir):
    """Point the server at a fresh storage and upload directory"""
    with metastore_settings(
        storage_dir=storage_dir, upload_dir=upload_dir, public_url=PUBLIC_URL, max_image_size=MAX_IMAGE_SIZE
    ) as settings:
        yield settings


@pytest.fixture()
def client(settings):
    with TestClient(api.app) as client:
        yield client


@pytest.fixture()
def store(storage_dir):
    return ProjectStore(storage_dir, PUBLIC_URL)


@pytest.fixture()
def pipeline(store, upload_dir):
    return IntakePipeline(store, upload_dir, max_image_size=1024)
