"""
Remote-function invocation.

`FunctionsEmulator` answers every call with a canned analysis after a
simulated inference delay, for offline development. `GatewayFunctions`
routes `analyze-image` to the real ImageAnalysisService. Both resolve to
a `Result` envelope; neither raises for expected failures.
"""

import asyncio
import random
from typing import Any, Protocol

from pydantic import ValidationError

from config.config import Settings, get_settings
from config.logging_config import get_logger
from models.models import Analysis, AnalysisRequest, AnalysisResult, Result
from services.analysis_service import AnalysisError, ImageAnalysisService, get_analysis_service

logger = get_logger(__name__)

ANALYZE_IMAGE = "analyze-image"


class Functions(Protocol):
    async def invoke(self, name: str, payload: dict[str, Any]) -> Result[AnalysisResult]: ...


def canned_analysis(rng: random.Random | None = None) -> AnalysisResult:
    """Placeholder result; only `disease_found` varies."""
    rng = rng or random.Random()
    return AnalysisResult(
        disease_found=rng.random() > 0.5,
        disease_name="Pneumonia (Mock)",
        disease_stage="Stage II",
        analysis=Analysis(
            summary="Local mock analysis summary of the uploaded image.",
            findings="Opacity observed in the lower left lobe. Suggestive of consolidation.",
            description="This is a mock implementation running locally without the remote analysis function.",
            symptoms="Cough, fever, difficulty breathing.",
            recommendations="Antibiotics and rest. Follow up in 7 days.",
        ),
    )


class FunctionsEmulator:
    """Offline stand-in; the payload is ignored."""

    def __init__(self, settings: Settings | None = None, rng: random.Random | None = None):
        self.settings = settings or get_settings()
        self._rng = rng or random.Random()

    async def invoke(self, name: str, payload: dict[str, Any]) -> Result[AnalysisResult]:
        await asyncio.sleep(self.settings.function_delay)
        result = canned_analysis(self._rng)
        logger.info("Mock function invoked", function=name, disease_found=result.disease_found)
        return Result(data=result)


class GatewayFunctions:
    """Invoke functions backed by the AI gateway."""

    def __init__(self, analysis_service: ImageAnalysisService | None = None):
        self.analysis_service = analysis_service or get_analysis_service()

    async def invoke(self, name: str, payload: dict[str, Any]) -> Result[AnalysisResult]:
        if name != ANALYZE_IMAGE:
            return Result.failure(f"Unknown function: {name}")

        try:
            request = AnalysisRequest.model_validate(payload)
        except ValidationError as e:
            return Result.failure(f"Invalid request: {e.errors()[0]['msg']}")

        try:
            result = await self.analysis_service.analyze(request)
        except AnalysisError as e:
            logger.warning("Function failed", function=name, error_code=e.code, error=str(e))
            return Result.failure(str(e))
        except Exception as e:
            logger.exception("Function crashed", function=name, error=str(e))
            return Result.failure(str(e) or "Unknown error")

        return Result(data=result)
