import json

import httpx
import pytest

from config.config import Settings
from database.kv_store import MemoryKeyValueStore
from services.analysis_service import ImageAnalysisService
from services.client import LocalClient

SAMPLE_IMAGE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Zero-latency settings on the in-memory backend."""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        storage_path=str(tmp_path / "storage.json"),
        auth_delay=0,
        sign_out_delay=0,
        query_delay=0,
        insert_delay=0,
        upload_delay=0,
        function_delay=0,
        ai_gateway_api_key="test-key",
        use_mock_functions=True,
    )


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def client(kv, settings) -> LocalClient:
    return LocalClient(kv, settings)


@pytest.fixture
def analysis_payload() -> dict:
    return {
        "image": SAMPLE_IMAGE,
        "imaging_type": "xray",
        "body_region": "chest",
        "patient_name": "Jane Doe",
    }


def completion_body(content: str | None) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "google/gemini-2.5-pro",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


class FakeGateway:
    """Answers chat completion calls with one canned reply and records requests."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.requests: list[dict] = []
        self.paths: list[str] = []

    def service(self, content: str | None = None, status_code: int = 200) -> ImageAnalysisService:
        def handler(request: httpx.Request) -> httpx.Response:
            self.paths.append(request.url.path)
            self.requests.append(json.loads(request.content))
            if status_code != 200:
                return httpx.Response(status_code, json={"error": {"message": "gateway refused"}})
            return httpx.Response(200, json=completion_body(content))

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ImageAnalysisService(self.settings, http_client=http_client)


@pytest.fixture
def gateway(settings) -> FakeGateway:
    return FakeGateway(settings)
