"""
Pytest configuration and fixtures for uploader tests.

Provides:
- In-memory document and object stores
- A signed-in auth provider
- Record and document factories
- A controller and a fully wired service
"""

from datetime import datetime, timedelta, timezone

import pytest

from uploader.adapters.memory_adapter import MemoryDocumentStore, MemoryObjectStore
from uploader.auth import LocalAuthProvider
from uploader.config import UploaderConfig
from uploader.lifecycle import UploadLifecycleController
from uploader.models import UploadStatus, VideoRecord
from uploader.notifications import ChangeNotifier
from uploader.service import UploaderService
from uploader.settings import AppSettings
from uploader.store import RecordStore

USER_ID = "user-1"
USER_EMAIL = "user@example.com"
BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_record():
    """Factory for VideoRecord instances"""

    def _make(record_id="a", status=UploadStatus.PENDING, video_url="",
              minutes=0, error=None, local_url="/tmp/a.mp4", title="Clip"):
        return VideoRecord(
            id=record_id,
            title=title,
            video_url=video_url,
            created_at=BASE_TIME + timedelta(minutes=minutes),
            user_id=USER_ID,
            user_email=USER_EMAIL,
            status=status,
            local_url=local_url,
            error=error,
        )

    return _make


@pytest.fixture
def make_document():
    """Factory for wire documents as the remote store holds them"""

    def _make(status="pending", url="", minutes=0, title="Clip", error=None):
        document = {
            "title": title,
            "videoURL": url,
            "createdAt": (BASE_TIME + timedelta(minutes=minutes)).isoformat(),
            "userId": USER_ID,
            "userEmail": USER_EMAIL,
            "status": status,
            "localURL": "/tmp/clip.mp4",
        }
        if error is not None:
            document["error"] = error
        return document

    return _make


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def store(notifier):
    return RecordStore(notifier)


@pytest.fixture
def documents():
    return MemoryDocumentStore()


@pytest.fixture
def objects():
    return MemoryObjectStore()


@pytest.fixture
def auth():
    provider = LocalAuthProvider()
    provider.sign_in(USER_ID, USER_EMAIL)
    return provider


@pytest.fixture
def controller(auth, documents, objects, store):
    return UploadLifecycleController(auth, documents, objects, store)


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)
    return str(path)


@pytest.fixture
def settings(tmp_path):
    return AppSettings(str(tmp_path / "settings.json"))


@pytest.fixture
def service(auth, documents, objects, settings, tmp_path):
    """Service wired to in-memory backends with the test user signed in"""
    config = UploaderConfig(DATA_DIR=str(tmp_path))
    svc = UploaderService(config, auth=auth, documents=documents, objects=objects, settings=settings)
    svc.initialize(configure_logging=False)
    yield svc
    svc.stop()
