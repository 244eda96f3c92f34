import asyncio
import json
import random

from services.analysis_service import FALLBACK_RECOMMENDATION
from services.client import LocalClient
from services.functions_service import ANALYZE_IMAGE, FunctionsEmulator, GatewayFunctions
from services.storage_service import StorageService

ANALYSIS_FIELDS = {"summary", "findings", "description", "symptoms", "recommendations"}


def test_emulator_returns_canned_analysis(settings):
    functions = FunctionsEmulator(settings, rng=random.Random(7))

    result = asyncio.run(functions.invoke(ANALYZE_IMAGE, {"ignored": True}))

    assert result.error is None
    assert result.data.disease_name == "Pneumonia (Mock)"
    assert result.data.disease_stage == "Stage II"
    assert set(result.data.analysis.model_dump()) == ANALYSIS_FIELDS
    assert isinstance(result.data.disease_found, bool)


def test_emulator_randomizes_disease_found(settings):
    functions = FunctionsEmulator(settings, rng=random.Random(0))

    async def scenario():
        return {(await functions.invoke(ANALYZE_IMAGE, {})).data.disease_found for _ in range(40)}

    assert asyncio.run(scenario()) == {True, False}


def test_client_uses_gateway_when_mock_disabled(kv, settings):
    client = LocalClient(kv, settings.model_copy(update={"use_mock_functions": False}))

    assert isinstance(client.functions, GatewayFunctions)
    assert isinstance(LocalClient(kv, settings).functions, FunctionsEmulator)


def test_gateway_functions_recovers_from_malformed_reply(gateway, analysis_payload):
    functions = GatewayFunctions(gateway.service("```json\n{disease_found: maybe\n```"))

    result = asyncio.run(functions.invoke(ANALYZE_IMAGE, analysis_payload))

    assert result.error is None
    assert set(result.data.analysis.model_dump()) == ANALYSIS_FIELDS
    assert result.data.analysis.recommendations == FALLBACK_RECOMMENDATION


def test_gateway_functions_wraps_upstream_errors(gateway, analysis_payload):
    functions = GatewayFunctions(gateway.service(status_code=429))

    result = asyncio.run(functions.invoke(ANALYZE_IMAGE, analysis_payload))

    assert result.data is None
    assert result.error.message == "Rate limit exceeded. Please try again in a moment."


def test_gateway_functions_passes_structured_reply(gateway, analysis_payload):
    reply = {"disease_found": False, "disease_name": None, "disease_stage": None, "analysis": {"summary": "Clear."}}
    functions = GatewayFunctions(gateway.service(json.dumps(reply)))

    result = asyncio.run(functions.invoke(ANALYZE_IMAGE, analysis_payload))

    assert result.data.disease_found is False
    assert result.data.analysis.summary == "Clear."


def test_gateway_functions_rejects_unknown_function(gateway):
    functions = GatewayFunctions(gateway.service("{}"))

    result = asyncio.run(functions.invoke("summarize", {}))

    assert result.error.message == "Unknown function: summarize"
    assert gateway.requests == []


def test_gateway_functions_rejects_invalid_payload(gateway, analysis_payload):
    functions = GatewayFunctions(gateway.service("{}"))

    result = asyncio.run(functions.invoke(ANALYZE_IMAGE, dict(analysis_payload, imaging_type="ultrasound")))

    assert result.error.message.startswith("Invalid request")
    assert gateway.requests == []


def test_storage_upload_and_placeholder_url(settings):
    storage = StorageService(settings)

    upload = asyncio.run(storage.upload("medical-images", "u1/123.png", b"\x89PNG"))
    url = storage.get_public_url("medical-images", "u1/123.png")
    other = storage.get_public_url("anything", "else")

    assert upload.data.path == "u1/123.png"
    assert url.data.public_url == settings.placeholder_public_url
    assert other.data == url.data
