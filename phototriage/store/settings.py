"""User-adjustable settings and data-directory layout."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from ..classifier.gate import DEFAULT_THRESHOLD

logger = logging.getLogger(__name__)


def default_data_dir() -> Path:
    env_path = os.environ.get("PHOTOTRIAGE_DATA_DIR", "").strip()
    if env_path:
        return Path(env_path).expanduser()
    return Path(".cache")


def get_paths(data_dir: Optional[Path] = None) -> SimpleNamespace:
    """Return every file path that lives under the data directory."""
    root = Path(data_dir) if data_dir is not None else default_data_dir()
    return SimpleNamespace(
        data_dir      = root,
        database      = root / "triage.db",
        settings_file = root / "settings.json",
    )


class TriageSettings(BaseModel):
    """Settings exposed to the user; ranges are enforced here and only here."""

    sensitivity_threshold: float = Field(DEFAULT_THRESHOLD, ge=0.5, le=1.0)
    auto_batch_deletions: bool = True
    batch_deletion_size: int = Field(10, ge=5, le=30)

    page_size: int = Field(48, ge=1)
    max_batch_attempts: int = Field(5, ge=1)
    decode_workers: int = Field(4, ge=1)
    image_cache_cost_limit: int = Field(120_000_000, ge=0)
    image_cache_count_limit: int = Field(200, ge=0)

    classifier_backend: Literal["local", "remote", "none"] = "local"
    model_name: str = "ViT-B-32"
    pretrained: str = "openai"
    inference_service_url: str = Field(
        default_factory=lambda: os.getenv("INFERENCE_SERVICE_URL", "http://127.0.0.1:8002")
    )


class SettingsStore:
    """JSON-file backed settings with validation on every update."""

    def __init__(self, settings_file: Path):
        self.settings_file = settings_file
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self._settings = TriageSettings()

    @property
    def current(self) -> TriageSettings:
        return self._settings

    def load(self) -> TriageSettings:
        if not self.settings_file.exists():
            return self._settings
        try:
            with open(self.settings_file, "r") as f:
                self._settings = TriageSettings.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Failed to load settings {self.settings_file}: {e}")
            self._settings = TriageSettings()
        return self._settings

    def save(self) -> None:
        try:
            with open(self.settings_file, "w") as f:
                json.dump(self._settings.model_dump(), f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to save settings {self.settings_file}: {e}")

    def update(self, **changes: Any) -> TriageSettings:
        """Apply changes; raises ValidationError and keeps the old settings if invalid."""
        merged = {**self._settings.model_dump(), **changes}
        self._settings = TriageSettings.model_validate(merged)
        self.save()
        logger.info(f"Settings updated: {sorted(changes)}")
        return self._settings

    def reset(self) -> TriageSettings:
        self._settings = TriageSettings()
        self.save()
        return self._settings

    def threshold(self) -> float:
        """Read fresh on every classification."""
        return self._settings.sensitivity_threshold
