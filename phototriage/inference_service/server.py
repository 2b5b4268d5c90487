"""Stateless inference server for sensitivity classification.

This service is responsible for:
- Loading the vision model once, on first use
- Accepting image data via HTTP
- Returning one sensitivity probability per image

The service knows nothing about the library, the derived sets or the
threshold. The client applies the threshold through its own gate.
"""

import argparse
import base64
import io
import logging
import threading
from typing import List, Optional

import numpy as np
import uvicorn
from fastapi import FastAPI, HTTPException
from PIL import Image
from pydantic import BaseModel

from ..classifier.model import ClipSensitivityModel

logger = logging.getLogger(__name__)


class ClassifyRequest(BaseModel):
    """Request to classify one or more images."""

    images: List[str]  # Base64-encoded images
    model_name: str = "ViT-B-32"
    pretrained: str = "openai"


class ClassifyResponse(BaseModel):
    """Response with one probability per image."""

    probabilities: List[float]
    model_info: dict
    count: int


class InferenceService:
    """Manages model loading and inference."""

    _model: Optional[ClipSensitivityModel] = None
    _lock = threading.Lock()

    @classmethod
    def load_model(
        cls,
        model_name: str = "ViT-B-32",
        pretrained: str = "openai",
    ) -> ClipSensitivityModel:
        """Load a model, reusing it if the same model/pretrained is requested."""
        with cls._lock:
            model = cls._model
            if model is not None and model.model_name == model_name and model.pretrained == pretrained:
                return model

            logger.info(f"Loading model: {model_name} ({pretrained})")
            cls._model = ClipSensitivityModel(model_name=model_name, pretrained=pretrained)
            return cls._model

    @classmethod
    def classify_images(
        cls,
        images: List[Image.Image],
        model_name: str = "ViT-B-32",
        pretrained: str = "openai",
    ) -> np.ndarray:
        model = cls.load_model(model_name, pretrained)
        return np.asarray([model.predict(image) for image in images], dtype=np.float32)


def decode_base64_image(payload: str) -> Image.Image:
    image = Image.open(io.BytesIO(base64.b64decode(payload)))
    return image.convert("RGB")


def create_app() -> FastAPI:
    """Create FastAPI application for the inference service."""

    app = FastAPI(
        title="Sensitivity Inference Service",
        description="Stateless service returning sensitivity probabilities for images",
        version="0.1.0",
    )

    @app.get("/health")
    @app.get("/healthz")  # Alias for K8s-style health checks
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/model-info")
    async def get_model_info():
        """Get information about the currently loaded model."""
        model = InferenceService._model
        if model is None:
            raise HTTPException(status_code=503, detail="No model loaded")
        return model.get_model_info()

    @app.post("/classify", response_model=ClassifyResponse)
    def classify(request: ClassifyRequest):
        """Classify base64-encoded images."""
        if not request.images:
            raise HTTPException(status_code=400, detail="No images provided")

        try:
            images = [decode_base64_image(payload) for payload in request.images]
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Invalid image data: {e}")

        try:
            probabilities = InferenceService.classify_images(
                images, request.model_name, request.pretrained
            )
        except Exception as e:
            logger.error(f"Classification failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return ClassifyResponse(
            probabilities=probabilities.tolist(),
            model_info=InferenceService._model.get_model_info(),
            count=len(probabilities),
        )

    return app


def main():
    """Run the inference service."""
    parser = argparse.ArgumentParser(description="Sensitivity inference service")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8002, help="Port to bind to")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
