"""Client for calling the remote sensitivity inference service.

This module handles communication with the inference service,
including image encoding and response handling.
"""

import base64
import io
import logging
import os
from typing import List, Optional

import httpx
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def encode_image(image: Image.Image) -> str:
    buffer = io.BytesIO()
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    image.save(buffer, format="JPEG", quality=95)
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


class InferenceClient:
    """Client for the inference service.

    The service URL comes from the argument, else INFERENCE_SERVICE_URL,
    else http://127.0.0.1:8002.
    """

    def __init__(
        self,
        service_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.service_url = (service_url or os.getenv("INFERENCE_SERVICE_URL", "http://127.0.0.1:8002")).rstrip("/")
        self.timeout = timeout
        self.client = httpx.Client(timeout=timeout, transport=transport)

        logger.info(f"InferenceClient initialized: url={self.service_url}")

    def close(self) -> None:
        self.client.close()

    def health_check(self) -> bool:
        """
        Check if inference service is healthy.

        Returns:
            True if service is accessible and healthy
        """
        try:
            response = self.client.get(f"{self.service_url}/health")
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Health check failed: {e}")
            return False

    def classify_images(
        self,
        images: List[Image.Image],
        model_name: str = "ViT-B-32",
        pretrained: str = "openai",
    ) -> np.ndarray:
        """
        Send images as base64 JPEGs and return their probabilities.

        Raises:
            httpx.HTTPError: transport failure or non-2xx response
        """
        response = self.client.post(
            f"{self.service_url}/classify",
            json={
                "images": [encode_image(img) for img in images],
                "model_name": model_name,
                "pretrained": pretrained,
            },
        )
        response.raise_for_status()
        result = response.json()
        return np.array(result["probabilities"], dtype=np.float32)


class RemoteSensitivityModel:
    """SensitivityModel backed by the inference service."""

    def __init__(self, client: InferenceClient, model_name: str = "ViT-B-32", pretrained: str = "openai"):
        self.client = client
        self.model_name = model_name
        self.pretrained = pretrained

    def predict(self, image: Image.Image) -> float:
        probabilities = self.client.classify_images([image], self.model_name, self.pretrained)
        return float(probabilities[0])
