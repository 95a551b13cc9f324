"""
Dynamic block router.

Endpoints:
- POST /generate-dynamic - Generate content for a dynamic block
- POST /preview-prompt - Show the prompt that would be sent to the LLM
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...story.orchestrator import build_error_payload
from ..dependencies import Services, get_services
from ..schemas.dynamic import DynamicGenerateRequest, GenerationErrorResponse, PromptPreviewResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/generate-dynamic",
    responses={500: {"model": GenerationErrorResponse, "description": "LLM call failed"}},
)
async def generate_dynamic(
    request: DynamicGenerateRequest,
    services: Services = Depends(get_services),
):
    """
    Generate content for a dynamic block.

    Returns the content itself as the JSON body: a string for text and word
    blocks, a list of strings for option blocks. Already generated content
    is returned as stored. On failure returns 500 with
    {error, message, stack, details}.
    """
    outcome = await services.orchestrator.generate(request.to_domain())

    if not outcome.ok:
        return JSONResponse(status_code=500, content=outcome.error)

    return JSONResponse(content=outcome.content)


@router.post("/preview-prompt", response_model=PromptPreviewResponse)
async def preview_prompt(
    request: DynamicGenerateRequest,
    services: Services = Depends(get_services),
):
    """Assemble the prompt for a dynamic block without calling the LLM."""
    try:
        preview = await services.orchestrator.preview_prompt(request.to_domain())
    except Exception as e:
        logger.error(f"[DynamicAPI] Preview generation error: {e}", exc_info=True)
        payload = build_error_payload(e)
        payload["error"] = "Preview Generation Error"
        return JSONResponse(status_code=500, content=payload)

    return PromptPreviewResponse(preview=preview)
