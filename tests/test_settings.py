import json

import pytest
from pydantic import ValidationError

from phototriage.store.settings import SettingsStore, TriageSettings, get_paths


def test_defaults():
    config = TriageSettings()
    assert config.sensitivity_threshold == 0.8
    assert config.auto_batch_deletions is True
    assert config.batch_deletion_size == 10
    assert config.page_size == 48


@pytest.mark.parametrize("threshold", [0.5, 0.75, 1.0])
def test_threshold_in_range(threshold):
    assert TriageSettings(sensitivity_threshold=threshold).sensitivity_threshold == threshold


@pytest.mark.parametrize("threshold", [0.49, 1.01])
def test_threshold_out_of_range(threshold):
    with pytest.raises(ValidationError):
        TriageSettings(sensitivity_threshold=threshold)


@pytest.mark.parametrize("size", [4, 31])
def test_batch_size_out_of_range(size):
    with pytest.raises(ValidationError):
        TriageSettings(batch_deletion_size=size)


def test_update_persists(tmp_path):
    settings_file = tmp_path / "settings.json"
    settings = SettingsStore(settings_file)
    settings.update(sensitivity_threshold=0.65, batch_deletion_size=20)

    reloaded = SettingsStore(settings_file)
    config = reloaded.load()
    assert config.sensitivity_threshold == 0.65
    assert config.batch_deletion_size == 20
    assert reloaded.threshold() == 0.65


def test_invalid_update_keeps_previous(tmp_path):
    settings = SettingsStore(tmp_path / "settings.json")
    with pytest.raises(ValidationError):
        settings.update(batch_deletion_size=50)
    assert settings.current.batch_deletion_size == 10


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    settings_file = tmp_path / "settings.json"
    settings_file.write_text(json.dumps({"sensitivity_threshold": 7}))

    config = SettingsStore(settings_file).load()
    assert config.sensitivity_threshold == 0.8


def test_reset(tmp_path):
    settings = SettingsStore(tmp_path / "settings.json")
    settings.update(auto_batch_deletions=False)
    assert settings.reset().auto_batch_deletions is True


def test_paths_under_data_dir(tmp_path):
    paths = get_paths(tmp_path)
    assert paths.database == tmp_path / "triage.db"
    assert paths.settings_file == tmp_path / "settings.json"


def test_data_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("PHOTOTRIAGE_DATA_DIR", str(tmp_path))
    assert get_paths().data_dir == tmp_path
