import pytest

from phototriage.classifier.gate import ClassificationGate
from phototriage.engine.library import MediaLibrary
from phototriage.store.derived_sets import DerivedSetStore
from phototriage.store.settings import SettingsStore

from fakes import CountingModel, FakeAssetSource


@pytest.fixture
def source():
    return FakeAssetSource()


@pytest.fixture
def store(tmp_path):
    store = DerivedSetStore(tmp_path / "triage.db")
    yield store
    store.close()


@pytest.fixture
def settings(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def model():
    return CountingModel()


@pytest.fixture
def gate(model, settings):
    return ClassificationGate(lambda: model, threshold_provider=settings.threshold)


@pytest.fixture
def library(source, store, settings, gate):
    settings.update(page_size=4, decode_workers=1)
    library = MediaLibrary(source, store, settings, gate=gate)
    yield library
    library.scanner.cancel()
    library.scanner.wait(timeout=5.0)
