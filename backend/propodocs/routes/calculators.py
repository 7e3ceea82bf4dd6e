"""
Propodocs Backend — Calculator Generation Routes
==================================================

What:  POST /api/calculators/generate    (service description → calculator schema)
       POST /api/calculators/edit-block  (rewrite one tier / add-on / column)
Who:   The calculator builder, for signed-in users only.

Both endpoints sit behind the strict AI rate limit. Responses name the
provider that produced the result, since the chain may fall back.
"""

import logging

from fastapi import APIRouter, Depends

from propodocs.auth import get_current_user
from propodocs.middleware.rate_limit import strict_rate_limit
from propodocs.schemas.common import ErrorResponse
from propodocs.schemas.generation import (
    CalculatorGenerationResponse,
    EditBlockRequest,
    EditBlockResponse,
    GenerateCalculatorRequest,
)
from propodocs.services.calculator_service import calculator_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/calculators",
    tags=["Calculators"],
    dependencies=[Depends(strict_rate_limit)],
)

GENERATION_ERRORS = {
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    429: {"description": "AI generation rate limit exceeded", "model": ErrorResponse},
    502: {"description": "Every configured AI provider failed", "model": ErrorResponse},
    503: {"description": "No AI provider configured", "model": ErrorResponse},
}


@router.post(
    "/generate",
    response_model=CalculatorGenerationResponse,
    responses=GENERATION_ERRORS,
    summary="Generate a pricing calculator from a description",
)
async def generate_calculator(
    payload: GenerateCalculatorRequest,
    user_id: int = Depends(get_current_user),
) -> CalculatorGenerationResponse:
    logger.info("User %s requested calculator generation (%d chars)", user_id, len(payload.prompt))
    return await calculator_service.generate_calculator(payload.prompt)


@router.post(
    "/edit-block",
    response_model=EditBlockResponse,
    responses=GENERATION_ERRORS,
    summary="Edit one calculator block with an instruction",
)
async def edit_block(
    payload: EditBlockRequest,
    user_id: int = Depends(get_current_user),
) -> EditBlockResponse:
    logger.info("User %s editing %s block: %.50s", user_id, payload.block_type, payload.instruction)
    return await calculator_service.edit_block(
        payload.block_type,
        payload.block_data,
        payload.instruction,
        payload.full_schema,
    )
