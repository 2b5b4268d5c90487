"""Threshold gate around an opaque image -> probability model."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from PIL import Image

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8
NOT_SENSITIVE_PROBABILITY = 0.0


class SensitivityModel(Protocol):
    """Anything that maps an image to the probability it is sensitive."""

    def predict(self, image: Image.Image) -> float:
        ...


@dataclass(frozen=True)
class Verdict:
    probability: float
    threshold: float

    @property
    def sensitive(self) -> bool:
        return self.probability >= self.threshold


class ClassificationGate:
    """Lazily acquires a model once and applies a live threshold.

    Safe to call from several scan workers: model acquisition is guarded
    by a single lock, and inference itself holds no gate state.
    """

    def __init__(
        self,
        model_loader: Optional[Callable[[], Optional[SensitivityModel]]],
        threshold_provider: Callable[[], float] = lambda: DEFAULT_THRESHOLD,
    ):
        """
        Initialize gate.

        Args:
            model_loader: Called at most once to build the model; may return
                None or raise when no model is available
            threshold_provider: Returns the current decision threshold
        """
        self._model_loader = model_loader
        self._threshold_provider = threshold_provider
        self._model: Optional[SensitivityModel] = None
        self._load_attempted = False
        self._lock = threading.Lock()

    def _acquire_model(self) -> Optional[SensitivityModel]:
        if self._load_attempted:
            return self._model

        with self._lock:
            if self._load_attempted:
                return self._model
            try:
                if self._model_loader is not None:
                    self._model = self._model_loader()
            except Exception as e:
                logger.warning(f"Sensitivity model failed to load: {e}")
                self._model = None
            if self._model is None:
                logger.warning("No sensitivity model available. All images will be treated as not sensitive.")
            self._load_attempted = True
        return self._model

    @property
    def model_available(self) -> bool:
        return self._acquire_model() is not None

    def classify(self, image: Image.Image) -> float:
        """Probability in [0, 1] that the image is sensitive."""
        model = self._acquire_model()
        if model is None:
            return NOT_SENSITIVE_PROBABILITY

        try:
            probability = float(model.predict(image))
        except Exception as e:
            logger.warning(f"Classification failed, treating image as not sensitive: {e}")
            return NOT_SENSITIVE_PROBABILITY

        return min(1.0, max(0.0, probability))

    def evaluate(self, image: Image.Image) -> Verdict:
        start_time = time.time()
        probability = self.classify(image)
        verdict = Verdict(probability=probability, threshold=self._threshold_provider())
        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            f"prob={probability:.3f} threshold={verdict.threshold} time={elapsed_ms}ms "
            f"result={'SENSITIVE' if verdict.sensitive else 'SAFE'}"
        )
        return verdict

    def is_sensitive(self, image: Image.Image) -> bool:
        return self.evaluate(image).sensitive
