"""
Propodocs Backend — Proposal Content Service
==============================================

What:  AI-written proposal copy: full proposal drafts, conversion of imported
       document text into editor blocks, and free-text enhancement.
How:   Same GenerationChain as the calculators. Block-producing operations
       validate the model output into ContentBlock models; a reply with no
       usable block counts as a failed attempt, so the chain falls through to
       the next provider instead of returning an empty document.
"""

import logging
from typing import Any, List

from pydantic import ValidationError as PydanticValidationError

from propodocs.exceptions import ValidationError
from propodocs.schemas.generation import (
    ContentBlock,
    EnhanceContentResponse,
    GenerateProposalRequest,
    ImportProposalResponse,
    ProposalContentResponse,
)
from propodocs.services.generation_chain import (
    GenerationChain,
    InvalidOutputError,
    generation_chain,
)
from propodocs.services.llm_base import GenerationOptions
from propodocs.services.prompts import enhance_prompts, import_prompts, proposal_prompts

logger = logging.getLogger(__name__)


def parse_content_blocks(value: Any) -> List[ContentBlock]:
    """
    Turn {"blocks": [...]} into ContentBlock models.

    Blocks of unknown type or malformed shape are dropped with a warning;
    raises InvalidOutputError when nothing usable remains.
    """
    if not isinstance(value, dict) or not isinstance(value.get("blocks"), list):
        raise InvalidOutputError('expected a JSON object with a "blocks" list')

    blocks: List[ContentBlock] = []
    dropped = 0
    for raw in value["blocks"]:
        try:
            blocks.append(ContentBlock.model_validate(raw))
        except PydanticValidationError:
            dropped += 1

    if dropped:
        logger.warning("Dropped %d content block(s) with unknown type or shape", dropped)
    if not blocks:
        raise InvalidOutputError("no usable content blocks")
    return blocks


class ProposalContentService:

    def __init__(self, chain: GenerationChain):
        self.chain = chain

    async def generate_proposal(self, request: GenerateProposalRequest) -> ProposalContentResponse:
        system_prompt, user_prompt = proposal_prompts(
            client_name=request.client_name,
            calculator_type=request.calculator_type,
            calculator_data=request.calculator_data,
            client_company=request.client_company,
            client_industry=request.client_industry,
            additional_context=request.additional_context,
        )
        result = await self.chain.run(
            system_prompt,
            user_prompt,
            GenerationOptions(json_output=True, temperature=0.7),
            parser=parse_content_blocks,
        )
        logger.info(
            "Generated %d proposal blocks for client '%s' via %s",
            len(result.value), request.client_name, result.provider,
        )
        return ProposalContentResponse(content=result.value, provider=result.provider)

    async def import_proposal(self, extracted_text: str) -> ImportProposalResponse:
        """
        Raises:
            ValidationError: the extracted text is empty
        """
        if not extracted_text or not extracted_text.strip():
            raise ValidationError(
                message="No content could be extracted from the document",
                field="extractedText",
            )

        system_prompt, user_prompt = import_prompts(extracted_text)
        result = await self.chain.run(
            system_prompt,
            user_prompt,
            GenerationOptions(json_output=True, temperature=0.3),
            parser=parse_content_blocks,
        )
        return ImportProposalResponse(
            blocks=result.value,
            extracted_text=extracted_text,
            provider=result.provider,
        )

    async def enhance_content(self, content: str, instruction: str) -> EnhanceContentResponse:
        """Improve the given copy, or write fresh copy when the input is only a stub."""
        system_prompt, user_prompt = enhance_prompts(content, instruction)
        result = await self.chain.run(
            system_prompt,
            user_prompt,
            GenerationOptions(json_output=False, temperature=0.7),
        )
        return EnhanceContentResponse(enhanced_content=result.value, provider=result.provider)


# ── Singleton Instance ────────────────────────────────────────────────────
proposal_content_service = ProposalContentService(generation_chain)
