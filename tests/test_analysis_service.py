import asyncio
import json

import pytest

from models.models import AnalysisRequest, ImagingType
from services.analysis_service import (
    FALLBACK_RECOMMENDATION,
    ConfigurationError,
    ImageAnalysisService,
    QuotaExhaustedError,
    RateLimitedError,
    UpstreamServiceError,
    build_user_message,
    parse_analysis,
    strip_code_fences,
)

STRUCTURED_REPLY = {
    "disease_found": True,
    "disease_name": "Pneumonia",
    "disease_stage": "Early",
    "analysis": {
        "summary": "Consolidation in the left lower lobe.",
        "findings": "Patchy opacity.",
        "description": "Infective consolidation.",
        "symptoms": "Cough, fever.",
        "recommendations": "Antibiotics; repeat film in 6 weeks.",
    },
}


def test_strip_code_fences():
    fenced = "```json\n{\"a\": 1}\n```"

    assert strip_code_fences(fenced) == '{"a": 1}'
    assert strip_code_fences("```\n[1]\n```") == "[1]"
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_parse_analysis_accepts_fenced_json():
    result = parse_analysis("```json\n" + json.dumps(STRUCTURED_REPLY) + "\n```")

    assert result.disease_found is True
    assert result.disease_name == "Pneumonia"
    assert result.analysis.recommendations.startswith("Antibiotics")


def test_parse_analysis_falls_back_on_prose():
    text = "```\nThe film shows no clear abnormality but quality is poor. " + "x" * 300 + "\n```"

    result = parse_analysis(text)

    assert result.disease_found is False
    assert result.disease_name is None
    assert result.disease_stage is None
    assert result.analysis.summary == text[:200]
    assert result.analysis.findings == text
    assert result.analysis.description == ""
    assert result.analysis.symptoms == ""
    assert result.analysis.recommendations == FALLBACK_RECOMMENDATION


def test_parse_analysis_falls_back_on_wrong_shape():
    result = parse_analysis('["not", "an", "object"]')

    assert result.analysis.recommendations == FALLBACK_RECOMMENDATION


def test_parse_analysis_joins_list_sections():
    reply = dict(STRUCTURED_REPLY, analysis={"findings": ["Opacity", "Effusion"], "symptoms": None})

    result = parse_analysis(json.dumps(reply))

    assert result.analysis.findings == "Opacity\nEffusion"
    assert result.analysis.symptoms == ""


def test_user_message_names_modality_and_region():
    request = AnalysisRequest(image="data:,", imaging_type=ImagingType.MRI, body_region="brain", patient_name=" Ann ")

    message = build_user_message(request)

    assert message.startswith('Analyze this MRI image of the brain for patient "Ann".')


def test_user_message_without_region():
    request = AnalysisRequest(image="data:,", imaging_type=ImagingType.SKIN, patient_name="Ann")

    assert build_user_message(request).startswith('Analyze this Skin Photo image for patient "Ann".')


def test_analyze_sends_multimodal_request(gateway, analysis_payload):
    service = gateway.service(json.dumps(STRUCTURED_REPLY))

    result = asyncio.run(service.analyze(AnalysisRequest(**analysis_payload)))

    assert result.disease_name == "Pneumonia"
    assert gateway.paths == ["/v1/chat/completions"]
    body = gateway.requests[0]
    assert body["model"] == "google/gemini-2.5-pro"
    assert body["temperature"] == 0.3
    system, user = body["messages"]
    assert system["role"] == "system"
    assert "Return ONLY the JSON object" in system["content"]
    assert user["content"][0]["type"] == "text"
    assert "X-Ray image of the chest" in user["content"][0]["text"]
    assert user["content"][1] == {"type": "image_url", "image_url": {"url": analysis_payload["image"]}}


@pytest.mark.parametrize(
    "status_code, error_type",
    [
        (429, RateLimitedError),
        (402, QuotaExhaustedError),
        (503, UpstreamServiceError),
    ],
)
def test_gateway_status_maps_to_error_category(gateway, analysis_payload, status_code, error_type):
    service = gateway.service(status_code=status_code)

    with pytest.raises(error_type) as excinfo:
        asyncio.run(service.analyze(AnalysisRequest(**analysis_payload)))

    assert excinfo.value.status_code in (status_code, 500)
    assert len(gateway.requests) == 1


def test_generic_gateway_error_mentions_status(gateway, analysis_payload):
    service = gateway.service(status_code=500)

    with pytest.raises(UpstreamServiceError, match="AI gateway error: 500"):
        asyncio.run(service.analyze(AnalysisRequest(**analysis_payload)))


def test_empty_completion_is_upstream_error(gateway, analysis_payload):
    service = gateway.service(content="")

    with pytest.raises(UpstreamServiceError, match="No response from AI"):
        asyncio.run(service.analyze(AnalysisRequest(**analysis_payload)))


def test_missing_api_key_is_configuration_error(settings, analysis_payload):
    service = ImageAnalysisService(settings.model_copy(update={"ai_gateway_api_key": ""}))

    with pytest.raises(ConfigurationError):
        asyncio.run(service.analyze(AnalysisRequest(**analysis_payload)))
