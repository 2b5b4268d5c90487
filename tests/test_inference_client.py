import json

import httpx
import numpy as np
import pytest
from PIL import Image

from phototriage.classifier.gate import ClassificationGate
from phototriage.inference_service.client import InferenceClient, RemoteSensitivityModel


def make_client(handler):
    return InferenceClient("http://inference.test", transport=httpx.MockTransport(handler))


def test_health_check():
    client = make_client(lambda request: httpx.Response(200, json={"status": "ok"}))
    assert client.health_check() is True


def test_health_check_failure():
    def handler(request):
        raise httpx.ConnectError("refused")

    client = make_client(handler)
    assert client.health_check() is False


def test_classify_images_sends_base64_payload():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"probabilities": [0.25, 0.9], "model_info": {}, "count": 2})

    client = make_client(handler)
    probabilities = client.classify_images([Image.new("RGB", (4, 4)), Image.new("RGBA", (4, 4))])

    assert len(seen["images"]) == 2
    assert seen["model_name"] == "ViT-B-32"
    np.testing.assert_allclose(probabilities, [0.25, 0.9])


def test_server_error_raises():
    client = make_client(lambda request: httpx.Response(500, json={"detail": "boom"}))
    with pytest.raises(httpx.HTTPStatusError):
        client.classify_images([Image.new("RGB", (4, 4))])


def test_remote_model_behind_gate():
    client = make_client(lambda request: httpx.Response(200, json={"probabilities": [0.95], "model_info": {}, "count": 1}))
    gate = ClassificationGate(lambda: RemoteSensitivityModel(client), threshold_provider=lambda: 0.8)
    assert gate.is_sensitive(Image.new("RGB", (4, 4))) is True


def test_remote_failure_is_not_sensitive():
    client = make_client(lambda request: httpx.Response(503))
    gate = ClassificationGate(lambda: RemoteSensitivityModel(client), threshold_provider=lambda: 0.8)
    assert gate.classify(Image.new("RGB", (4, 4))) == 0.0
