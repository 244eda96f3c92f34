"""
Image analysis through the OpenAI-compatible AI gateway.

This service handles:
- Prompt construction for the imaging modality and body region
- The multimodal chat completion call
- Mapping gateway failures to typed errors (rate limit, quota, other)
- Recovering structured results from loosely formatted model output

Requests are never retried automatically.
"""

import json
import re
import time

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI
from pydantic import ValidationError

from config.config import Settings, get_settings
from config.logging_config import get_logger
from models.models import Analysis, AnalysisRequest, AnalysisResult

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are an expert medical imaging AI assistant trained to analyze medical images including X-rays, CT scans, MRI scans, and dermatological photographs. You must analyze the provided image in extreme detail.

Your analysis must be returned as a JSON object with exactly these fields:
- disease_found: boolean (true if any disease/abnormality is detected, false if healthy)
- disease_name: string or null (name of the disease if found)
- disease_stage: string or null (stage/grade like "I", "II", "III", "IV", "Early", "Advanced" if applicable)
- analysis: object with these sub-fields:
  - summary: string (2-3 sentence overview of findings)
  - findings: string (detailed description of what you observe in the image - abnormalities, patterns, structures)
  - description: string (if disease found: detailed explanation of the disease, its pathology, how it presents in imaging)
  - symptoms: string (common symptoms associated with the findings)
  - recommendations: string (recommended next steps, further tests, treatment approaches)

Be thorough, clinical, and detailed. If the image quality is poor or not clearly medical, still provide your best analysis and note limitations. Always provide actionable recommendations.

IMPORTANT: Return ONLY the JSON object, no markdown, no code blocks, just raw JSON."""

FALLBACK_RECOMMENDATION = "Please consult with a specialist for detailed assessment."
SUMMARY_PREVIEW_CHARS = 200

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class AnalysisError(Exception):
    """Base class for analysis failures surfaced to the caller."""

    status_code = 500
    code = "ANALYSIS_FAILED"


class ConfigurationError(AnalysisError):
    code = "NOT_CONFIGURED"


class RateLimitedError(AnalysisError):
    status_code = 429
    code = "RATE_LIMITED"


class QuotaExhaustedError(AnalysisError):
    status_code = 402
    code = "QUOTA_EXHAUSTED"


class UpstreamServiceError(AnalysisError):
    code = "UPSTREAM_ERROR"


def build_user_message(request: AnalysisRequest) -> str:
    """Instruction text sent alongside the image."""
    region = f" of the {request.body_region}" if request.body_region else ""
    return (
        f"Analyze this {request.imaging_type.label} image{region} for patient "
        f'"{request.patient_name}". Examine every detail of the image for any signs of '
        "disease, abnormality, or pathology. Determine if disease is present, identify it, "
        "stage it if applicable, and provide a comprehensive clinical analysis."
    )


def build_messages(request: AnalysisRequest) -> list[dict]:
    """System prompt plus a multimodal user turn carrying the image."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": build_user_message(request)},
                {"type": "image_url", "image_url": {"url": request.image}},
            ],
        },
    ]


def strip_code_fences(text: str) -> str:
    """Remove every ``` / ```json marker from model output."""
    return _FENCE.sub("", text).strip()


def fallback_result(content: str) -> AnalysisResult:
    """Best-effort result when the model output is not the expected JSON."""
    return AnalysisResult(
        disease_found=False,
        disease_name=None,
        disease_stage=None,
        analysis=Analysis(
            summary=content[:SUMMARY_PREVIEW_CHARS],
            findings=content,
            description="",
            symptoms="",
            recommendations=FALLBACK_RECOMMENDATION,
        ),
    )


def parse_analysis(content: str) -> AnalysisResult:
    """
    Parse model output into an AnalysisResult.

    Code fences are stripped first. Output that still is not a JSON object
    with the expected fields yields the fallback result built from the
    raw text.
    """
    try:
        parsed = json.loads(strip_code_fences(content))
        return AnalysisResult.model_validate(parsed)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Model output not structured, using fallback", error=str(e)[:200])
        return fallback_result(content)


class ImageAnalysisService:
    """
    Client for the AI gateway's chat completion endpoint.

    Lazily builds the AsyncOpenAI client so settings can be overridden in
    tests, and accepts a preconfigured httpx client for the same reason.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.ai_gateway_api_key,
                base_url=self.settings.ai_gateway_base_url,
                timeout=self.settings.ai_timeout_seconds,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Analyze one image.

        Raises:
            ConfigurationError: No gateway API key is configured.
            RateLimitedError: The gateway answered 429.
            QuotaExhaustedError: The gateway answered 402.
            UpstreamServiceError: Any other gateway failure or an empty reply.
        """
        if not self.settings.ai_gateway_api_key:
            raise ConfigurationError("AI_GATEWAY_API_KEY is not configured")

        start_time = time.perf_counter()
        logger.info(
            "Analyzing image",
            imaging_type=request.imaging_type.value,
            body_region=request.body_region or None,
            image_chars=len(request.image),
        )

        try:
            completion = await self.client.chat.completions.create(
                model=self.settings.ai_model,
                messages=build_messages(request),
                temperature=self.settings.ai_temperature,
            )
        except APIStatusError as e:
            raise self._status_error(e) from e
        except APIConnectionError as e:
            logger.error("AI gateway unreachable", error=str(e))
            raise UpstreamServiceError(f"AI gateway unreachable: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise UpstreamServiceError("No response from AI")

        result = parse_analysis(content)
        logger.info(
            "Image analysis complete",
            disease_found=result.disease_found,
            processing_time_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return result

    def _status_error(self, error: APIStatusError) -> AnalysisError:
        status = error.status_code
        if status == 429:
            logger.warning("AI gateway rate limited")
            return RateLimitedError("Rate limit exceeded. Please try again in a moment.")
        if status == 402:
            logger.warning("AI gateway credits exhausted")
            return QuotaExhaustedError("AI credits exhausted. Please add credits to continue.")
        logger.error("AI gateway error", status_code=status, body=error.response.text[:500])
        return UpstreamServiceError(f"AI gateway error: {status}")


# Singleton instance
_analysis_service: ImageAnalysisService | None = None


def get_analysis_service() -> ImageAnalysisService:
    """Get the image analysis service singleton."""
    global _analysis_service
    if _analysis_service is None:
        _analysis_service = ImageAnalysisService()
    return _analysis_service
