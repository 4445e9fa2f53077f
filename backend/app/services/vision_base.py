"""
FloraLens Backend - Abstract Vision Service Interface
=======================================================

What:  Contract for AI species identification from an image.
How:   Concrete providers inherit from VisionService and implement
       analyze_image(). The result is a tagged outcome, never a partial object.
Who:   Called by ScanService between storage and persistence.

Outcome:
    AnalysisSuccess(analysis)  analysis passed full FloraFaunaAnalysis validation
    AnalysisFailure(reason)    anything else: transport error, timeout, blocked
                               or empty response, JSON that fails the schema

Implementations:
    - GeminiService: Google Gemini with JSON structured output (default)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from app.schemas.scan import FloraFaunaAnalysis

# Shown to the model with every image; the schema fixes the output shape.
ANALYSIS_INSTRUCTION = (
    "Analyze this image of flora or fauna. Identify the species (provide both "
    "scientific and common names).\n"
    "Determine if it is safe to eat and safe to touch. Provide your confidence "
    "level in the identification (high, medium, or low).\n"
    "Include any important warnings or cautions. Provide a detailed description "
    "of the species and its characteristics."
)


@dataclass(frozen=True)
class AnalysisSuccess:
    analysis: FloraFaunaAnalysis


@dataclass(frozen=True)
class AnalysisFailure:
    reason: str


AnalysisOutcome = Union[AnalysisSuccess, AnalysisFailure]


class VisionService(ABC):
    """
    Abstract interface for schema-constrained image analysis.

    Contract:
        - analyze_image() never raises for provider problems; it returns
          AnalysisFailure with a short reason for logging
        - a success value always satisfies FloraFaunaAnalysis in full
        - no schema repair: an object missing a field is a failure
    """

    @abstractmethod
    async def analyze_image(self, data: bytes, mime_type: str) -> AnalysisOutcome:
        """
        Identify the species shown in an image.

        Args:
            data:      Raw image bytes (sent base64-encoded on the wire).
            mime_type: Declared MIME type of the upload, e.g. "image/jpeg".
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability test; does not consume model quota."""
        ...
