import sys
from pathlib import Path

import pytest

# Allow `import linkspaces` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from linkspaces.spaces import SpacesStore  # noqa: E402
from linkspaces.storage import MemoryKeyValueStore, PersistenceGateway  # noqa: E402


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def notify(self, message):
        self.messages.append(message)


class WriteFailingStore(MemoryKeyValueStore):
    """Reads work, every write raises like a full or disabled store."""

    def set(self, key, value):
        raise OSError("quota exceeded")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv, notifier):
    return SpacesStore(PersistenceGateway(kv, notifier=notifier))


@pytest.fixture
def empty_store(notifier):
    kv = MemoryKeyValueStore({"spaces_v1": '{"version": 1, "folders": []}'})
    return SpacesStore(PersistenceGateway(kv, notifier=notifier))


@pytest.fixture
def write_failing_kv():
    return WriteFailingStore()
