"""
Propodocs Backend — AI Generation Schemas
===========================================

What:  Request/response models for calculator generation, calculator block
       editing, and proposal content generation.

Design Decision:
    Generated calculator schemas are returned as plain dicts, not parsed into
    strict models. Upstream models are not contractually bound to the output
    format, so structural problems are reported as `warnings` next to the
    artifact (see calculator_service.validate_calculator_schema) rather than
    rejected by response validation.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from propodocs.schemas.common import CamelModel

CalculatorLayout = Literal["hybrid", "tiered", "itemized"]
BlockType = Literal["tier", "addon", "column"]
ContentBlockType = Literal["heading", "paragraph", "bulletListItem", "numberedListItem", "table"]


# ══════════════════════════════════════════════════════════════════════════
# Content blocks
# ══════════════════════════════════════════════════════════════════════════


class ContentBlock(BaseModel):
    """
    One editor block of proposal content.

    heading:          props.level in 1..3, content is a list of text runs
    paragraph / list: content is a list of text runs
    table:            content is {"type": "tableContent", "rows": [...]}
    """

    type: ContentBlockType
    props: Dict[str, Any] = Field(default_factory=dict)
    content: Any = None


# ══════════════════════════════════════════════════════════════════════════
# Calculator generation
# ══════════════════════════════════════════════════════════════════════════


class GenerateCalculatorRequest(BaseModel):
    prompt: str = Field(min_length=1, max_length=20_000)


class CalculatorGenerationResponse(BaseModel):
    calculator: Dict[str, Any] = Field(description="Generated calculator schema")
    provider: str = Field(description="AI provider that produced the schema")
    warnings: List[str] = Field(
        default_factory=list,
        description="Soft validation failures (tier count, pricing order, categories, ids)",
    )


class EditBlockRequest(CamelModel):
    block_type: BlockType
    block_data: Dict[str, Any]
    instruction: str = Field(min_length=1, max_length=5_000)
    full_schema: Optional[Dict[str, Any]] = None


class EditBlockResponse(BaseModel):
    block: Dict[str, Any]
    provider: str


# ══════════════════════════════════════════════════════════════════════════
# Proposal content
# ══════════════════════════════════════════════════════════════════════════


class GenerateProposalRequest(CamelModel):
    client_name: str = Field(min_length=1)
    client_company: Optional[str] = None
    client_industry: Optional[str] = None
    calculator_type: Literal["marketing", "custom"]
    calculator_data: Dict[str, Any] = Field(default_factory=dict)
    additional_context: Optional[str] = None


class ProposalContentResponse(BaseModel):
    content: List[ContentBlock]
    provider: str


class ImportProposalRequest(CamelModel):
    extracted_text: str = ""


class ImportProposalResponse(CamelModel):
    blocks: List[ContentBlock]
    extracted_text: str
    provider: str


class EnhanceContentRequest(BaseModel):
    content: str = ""
    instruction: str = "Create compelling marketing proposal content"


class EnhanceContentResponse(CamelModel):
    enhanced_content: str
    provider: str
