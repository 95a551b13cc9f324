"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .dynamic import (
    ContextRefSchema,
    DynamicGenerateRequest,
    PromptPreviewResponse,
    GenerationErrorResponse,
)
from .choices import (
    RecordChoiceRequest,
    RecordChoiceResponse,
    SaveCodenameRequest,
    SaveCodenameResponse,
)
from .story import (
    BlockListResponse,
    BlockDetailResponse,
    CompiledStoryResponse,
    ChoiceSummaryResponse,
)

__all__ = [
    "ContextRefSchema",
    "DynamicGenerateRequest",
    "PromptPreviewResponse",
    "GenerationErrorResponse",
    "RecordChoiceRequest",
    "RecordChoiceResponse",
    "SaveCodenameRequest",
    "SaveCodenameResponse",
    "BlockListResponse",
    "BlockDetailResponse",
    "CompiledStoryResponse",
    "ChoiceSummaryResponse",
]
