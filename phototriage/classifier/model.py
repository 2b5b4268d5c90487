"""Concrete sensitivity models and the loader used by the classification gate."""

import logging
from typing import Callable, List, Optional

from PIL import Image

from .gate import SensitivityModel

logger = logging.getLogger(__name__)

SENSITIVE_PROMPTS = [
    "an explicit nsfw photo",
    "a photo containing nudity",
    "pornographic content",
]
SAFE_PROMPTS = [
    "a safe for work photo",
    "a photo of people fully clothed",
    "a landscape photo",
    "a photo of food",
    "a screenshot of text",
]


class ClipSensitivityModel:
    """Zero-shot sensitivity scoring with an OpenCLIP model."""

    def __init__(
        self,
        model_name: str = "ViT-B-32",
        pretrained: str = "openai",
        device: Optional[str] = None,
        sensitive_prompts: Optional[List[str]] = None,
        safe_prompts: Optional[List[str]] = None,
    ):
        """
        Initialize model.

        Args:
            model_name: CLIP model architecture
            pretrained: Pretrained weights to use
            device: Device to use (cuda/mps/cpu), auto-detected if None
            sensitive_prompts: Text prompts whose probability mass counts as sensitive
            safe_prompts: Competing prompts for everything else
        """
        import open_clip
        import torch

        self._torch = torch
        self.model_name = model_name
        self.pretrained = pretrained
        self.sensitive_prompts = sensitive_prompts or SENSITIVE_PROMPTS
        self.safe_prompts = safe_prompts or SAFE_PROMPTS

        # Auto-detect best available device
        if device is None:
            if torch.cuda.is_available():
                device = "cuda"
            elif torch.backends.mps.is_available():
                device = "mps"
            else:
                device = "cpu"

        self.device = torch.device(device)
        logger.info(f"Using device: {self.device}")

        logger.info(f"Loading model: {model_name} ({pretrained})")
        self.model, _, self.preprocess = open_clip.create_model_and_transforms(
            model_name,
            pretrained=pretrained,
            device=self.device,
        )
        self.model.eval()

        tokenizer = open_clip.get_tokenizer(model_name)
        prompts = self.sensitive_prompts + self.safe_prompts
        with torch.no_grad():
            text_features = self.model.encode_text(tokenizer(prompts).to(self.device))
            self.text_features = text_features / text_features.norm(dim=-1, keepdim=True)

        logger.info("Model loaded successfully")

    def predict(self, image: Image.Image) -> float:
        """Summed softmax probability of the sensitive prompts."""
        torch = self._torch
        if image.mode != "RGB":
            image = image.convert("RGB")

        image_tensor = self.preprocess(image).unsqueeze(0).to(self.device)

        with torch.no_grad():
            image_features = self.model.encode_image(image_tensor)
            image_features = image_features / image_features.norm(dim=-1, keepdim=True)
            logits = 100.0 * image_features @ self.text_features.T
            probs = logits.softmax(dim=-1).cpu().numpy().squeeze()

        return float(probs[: len(self.sensitive_prompts)].sum())

    def get_model_info(self) -> dict:
        return {
            "model_name": self.model_name,
            "pretrained": self.pretrained,
            "device": str(self.device),
            "sensitive_prompts": self.sensitive_prompts,
        }


def make_model_loader(
    backend: str,
    model_name: str = "ViT-B-32",
    pretrained: str = "openai",
    service_url: Optional[str] = None,
) -> Optional[Callable[[], Optional[SensitivityModel]]]:
    """
    Build the deferred loader the gate calls on first use.

    Args:
        backend: "local" (in-process OpenCLIP), "remote" (inference service) or "none"

    Returns:
        A zero-argument loader, or None when classification is disabled
    """
    if backend == "none":
        return None

    if backend == "remote":
        def load_remote() -> Optional[SensitivityModel]:
            from ..inference_service.client import InferenceClient, RemoteSensitivityModel

            client = InferenceClient(service_url)
            if not client.health_check():
                logger.warning(f"Inference service not reachable at {client.service_url}")
                client.close()
                return None
            return RemoteSensitivityModel(client, model_name, pretrained)

        return load_remote

    if backend == "local":
        return lambda: ClipSensitivityModel(model_name=model_name, pretrained=pretrained)

    raise ValueError(f"Unknown classifier backend: {backend}")
