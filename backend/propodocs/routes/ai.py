"""
Propodocs Backend — Proposal Content Routes
=============================================

What:  POST /api/ai/generate-proposal  (draft a full proposal as editor blocks)
       POST /api/ai/import-proposal    (structure text from an uploaded document)
       POST /api/ai/enhance-content    (rewrite or write one passage)
"""

import logging

from fastapi import APIRouter, Depends

from propodocs.auth import get_current_user
from propodocs.middleware.rate_limit import strict_rate_limit
from propodocs.routes.calculators import GENERATION_ERRORS
from propodocs.schemas.generation import (
    EnhanceContentRequest,
    EnhanceContentResponse,
    GenerateProposalRequest,
    ImportProposalRequest,
    ImportProposalResponse,
    ProposalContentResponse,
)
from propodocs.services.proposal_content_service import proposal_content_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/ai",
    tags=["AI Content"],
    dependencies=[Depends(get_current_user), Depends(strict_rate_limit)],
)


@router.post(
    "/generate-proposal",
    response_model=ProposalContentResponse,
    responses=GENERATION_ERRORS,
    summary="Generate proposal content blocks",
)
async def generate_proposal(payload: GenerateProposalRequest) -> ProposalContentResponse:
    return await proposal_content_service.generate_proposal(payload)


@router.post(
    "/import-proposal",
    response_model=ImportProposalResponse,
    responses=GENERATION_ERRORS,
    summary="Convert extracted document text into content blocks",
)
async def import_proposal(payload: ImportProposalRequest) -> ImportProposalResponse:
    return await proposal_content_service.import_proposal(payload.extracted_text)


@router.post(
    "/enhance-content",
    response_model=EnhanceContentResponse,
    responses=GENERATION_ERRORS,
    summary="Enhance a passage, or write one from an instruction",
)
async def enhance_content(payload: EnhanceContentRequest) -> EnhanceContentResponse:
    return await proposal_content_service.enhance_content(payload.content, payload.instruction)
