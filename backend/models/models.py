"""
Pydantic models for the data API emulation and the image analysis API.

Every store, auth, storage and function call answers with a `Result`
envelope. Expected failures travel in `error`, never as exceptions.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")


class ErrorDetail(BaseModel):
    """Error carried inside a result envelope."""
    message: str = Field(..., description="Human-readable error message")


class Result(BaseModel, Generic[T]):
    """
    Uniform `{data, error}` envelope.

    Callers branch on `error` presence. `data` is None whenever `error`
    is set, and may also be None on success (e.g. `single()` on no rows).
    """
    data: T | None = Field(default=None, description="Payload on success")
    error: ErrorDetail | None = Field(default=None, description="Error on failure")

    @classmethod
    def failure(cls, message: str) -> "Result[T]":
        return cls(error=ErrorDetail(message=message))


# ============================================================================
# Auth
# ============================================================================

class AuthEvent(str, Enum):
    """Session-change notifications delivered to subscribers."""
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


class User(BaseModel):
    """
    A registered user.

    The password is stored as plaintext: the emulated auth layer offers no
    security and must never be exposed beyond local development.
    """
    id: str = Field(..., description="Opaque unique identifier")
    email: str = Field(..., description="Unique email address")
    password: str = Field(..., description="Plaintext password")
    user_metadata: dict[str, Any] = Field(default_factory=dict, description="Profile fields given at sign-up")


class Session(BaseModel):
    """The single authenticated user context."""
    access_token: str = Field(default="mock_token", description="Constant placeholder token")
    user: User


class AuthData(BaseModel):
    """Payload of a successful sign-up or sign-in."""
    user: User
    session: Session


# ============================================================================
# Object storage
# ============================================================================

class UploadData(BaseModel):
    path: str


class PublicUrlData(BaseModel):
    public_url: str


# ============================================================================
# Image analysis
# ============================================================================

class ImagingType(str, Enum):
    """Supported imaging modalities."""
    XRAY = "xray"
    CT = "ct"
    MRI = "mri"
    SKIN = "skin"

    @property
    def label(self) -> str:
        """Human-readable modality name used in prompts."""
        return {
            ImagingType.XRAY: "X-Ray",
            ImagingType.CT: "CT Scan",
            ImagingType.MRI: "MRI",
            ImagingType.SKIN: "Skin Photo",
        }[self]


class AnalysisRequest(BaseModel):
    """
    Request to analyze a medical image.

    Attributes:
        image: The image as a data URL (`data:image/png;base64,...`).
        imaging_type: Imaging modality.
        body_region: Optional anatomical region.
        patient_name: Patient display name.
    """
    image: str = Field(..., min_length=1, description="Image data URL")
    imaging_type: ImagingType = Field(..., description="Imaging modality")
    body_region: str = Field(default="", max_length=200, description="Body region")
    patient_name: str = Field(..., min_length=1, max_length=200, description="Patient name")

    @field_validator("patient_name")
    @classmethod
    def validate_patient_name(cls, v: str) -> str:
        """Ensure the patient name is not just whitespace."""
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("Patient name cannot be empty")
        return cleaned


class Analysis(BaseModel):
    """The five narrative sections of an analysis report."""
    summary: str = ""
    findings: str = ""
    description: str = ""
    symptoms: str = ""
    recommendations: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def flatten_lists(cls, v: Any) -> Any:
        """Models sometimes answer with bullet lists; join them into text."""
        if v is None:
            return ""
        if isinstance(v, list):
            return "\n".join(str(item) for item in v)
        return v


class AnalysisResult(BaseModel):
    """Structured outcome of an image analysis."""
    disease_found: bool = Field(..., description="Whether an abnormality was detected")
    disease_name: str | None = Field(default=None, description="Disease name if found")
    disease_stage: str | None = Field(default=None, description="Stage or grade if applicable")
    analysis: Analysis = Field(default_factory=Analysis)


# ============================================================================
# Service responses
# ============================================================================

class HealthStatus(str, Enum):
    """System health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """
    Health check response for monitoring.

    Attributes:
        status: Overall system health status.
        version: Application version.
        environment: Deployment environment.
        checks: Individual component health checks.
    """
    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Deployment environment")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Component health checks")


class ErrorResponse(BaseModel):
    """
    Standardized error response.

    Attributes:
        error: Error category code.
        message: Human-readable error message.
        details: Additional error details.
        request_id: Request ID for tracing.
    """
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(default=None, description="Additional details")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")
