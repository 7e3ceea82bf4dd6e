"""
Propodocs Backend — Generation Prompts
========================================

What:  System/user prompt builders for every generation operation.
Why:   Kept apart from the services so prompt wording can change without
       touching fallback or validation logic, and so tests can assert on
       what is sent to providers.

Every JSON-producing prompt ends by demanding bare JSON. Models still wrap
answers in ``` fences now and then; the chain strips those.
"""

import json
from typing import Any, Dict, Iterable, Optional, Tuple

# ══════════════════════════════════════════════════════════════════════════
# Calculator generation
# ══════════════════════════════════════════════════════════════════════════

# Scaffold the model must fill. The rules mirror validate_calculator_schema:
# whatever is demanded here is checked (and reported as a warning) afterwards.
_CALCULATOR_SYSTEM_TEMPLATE = """You design pricing calculators for a marketing agency's proposal platform.
Read the service description and return one calculator schema.

LAYOUT
- "hybrid": tiers plus add-ons. Prefer this for full service packages.
- "tiered": tiers only, for simple packages with no extras.
- "itemized": a-la-carte menu with no tiers.

TIERS (hybrid and tiered layouts)
- Exactly 3 tiers: entry level, mid-market, enterprise.
- Ids are "tier_1", "tier_2", "tier_3".
- Each tier has a distinct name, a description of who it is for, a monthlyPrice,
  a setupFee (usually half the first month) and 4 to 6 features.
- monthlyPrice must strictly increase from tier 1 to tier 3.
- Realistic agency retainers run from 1,500 to 25,000 per month.

ADD-ONS
- Every add-on has a unique snake_case id, a name, a benefit-focused description,
  a price, a priceType ("monthly", "one-time" or "per-unit") and a category.
- category must be one of: {categories}.

PRICING
- Use prices given in the request. Otherwise estimate premium agency rates.
- One-time services: 500 to 15,000. Per-unit items: 100 to 3,000.

WORDING
- Say "Investment", "Retainer", "Deliverables" and "Engagement".

OUTPUT
Return only this JSON object, with no prose and no code fences:
{{
  "name": "Calculator name",
  "description": "One-line positioning statement",
  "layout": "hybrid",
  "tiers": [
    {{"id": "tier_1", "name": "Starter", "description": "Who it is for", "monthlyPrice": 5000, "setupFee": 2500, "features": ["..."]}}
  ],
  "addOns": [
    {{"id": "review_management", "name": "Review Management", "description": "...", "price": 500, "priceType": "monthly", "category": "Local & Reputation"}}
  ],
  "columns": [
    {{"id": "service", "label": "Service", "type": "text"}},
    {{"id": "description", "label": "Deliverables & Scope", "type": "text"}},
    {{"id": "price", "label": "Investment", "type": "currency"}},
    {{"id": "qty", "label": "Qty", "type": "number"}},
    {{"id": "total", "label": "Total", "type": "formula", "formula": "price * qty"}}
  ],
  "clientFields": ["name", "company", "email", "phone", "address"]
}}
Include every service the request mentions."""


def calculator_prompts(request: str, categories: Iterable[str]) -> Tuple[str, str]:
    system = _CALCULATOR_SYSTEM_TEMPLATE.format(
        categories=", ".join(f'"{c}"' for c in categories)
    )
    return system, f"Service description:\n{request}"


# ══════════════════════════════════════════════════════════════════════════
# Calculator block editing
# ══════════════════════════════════════════════════════════════════════════

_BLOCK_SHAPES = {
    "tier": "{ id, name, description, monthlyPrice, setupFee, features: string[] }",
    "addon": '{ id, name, description, price, priceType: "monthly" | "one-time" | "per-unit", category }',
    "column": '{ id, label, type: "text" | "number" | "currency" | "formula", formula? }',
}


def block_edit_prompts(
    block_type: str,
    block_data: Dict[str, Any],
    instruction: str,
    full_schema: Optional[Dict[str, Any]] = None,
) -> Tuple[str, str]:
    system = (
        f"You edit one {block_type} block of a pricing calculator.\n"
        "Change only what the instruction asks for and keep every other field as it is.\n"
        "Keep prices realistic for a premium marketing agency.\n"
        f"Block shape: {_BLOCK_SHAPES[block_type]}\n"
        f"Return only the updated {block_type} as a JSON object, with no prose and no code fences."
    )
    parts = [f"Current {block_type}:\n{json.dumps(block_data, indent=2)}"]
    if full_schema:
        parts.append(f"Surrounding calculator, for context only:\n{json.dumps(full_schema, indent=2)}")
    parts.append(f'Instruction: "{instruction}"')
    return system, "\n\n".join(parts)


# ══════════════════════════════════════════════════════════════════════════
# Proposal content
# ══════════════════════════════════════════════════════════════════════════

_BLOCK_FORMAT = """Return only a JSON object of the form {"blocks": [...]}. Block shapes:
- heading:          {"type": "heading", "props": {"level": 1}, "content": [{"type": "text", "text": "..."}]}
- paragraph:        {"type": "paragraph", "content": [{"type": "text", "text": "..."}]}
- bulletListItem:   {"type": "bulletListItem", "content": [{"type": "text", "text": "..."}]}
- numberedListItem: {"type": "numberedListItem", "content": [{"type": "text", "text": "..."}]}
- table:            {"type": "table", "content": {"type": "tableContent", "rows": [{"cells": [[{"type": "text", "text": "..."}]]}]}}"""

_PROPOSAL_SYSTEM = """You write marketing proposals for an agency, addressed to one client.

Sections, in order:
1. Executive Summary (heading level 1)
2. Understanding Your Needs (heading level 2)
3. Our Proposed Solution (heading level 2): one bullet per selected service, naming the
   service and the goal it serves. This is the section that sells.
4. Detailed Service Breakdown (heading level 2): a table with Service, Deliverables and
   Timeline columns covering every selected line item.
5. Value & Investment (heading level 2)
6. Next Steps (heading level 2)

Style: active voice, sentences under 20 words where possible, no buzzwords or cliches,
confident and warm.

""" + _BLOCK_FORMAT

_CUSTOM_CALCULATOR_NOTE = (
    "\n\nThis is a custom quote: tie the content closely to its line items and prices."
)

_IMPORT_SYSTEM = """You convert text extracted from an existing proposal document into editor blocks.
Keep the document's own structure: headings (levels 1 to 3), paragraphs, bulleted and numbered lists.
Clean up extraction artifacts. Describe pricing tables in prose.
Never add content that is not in the source text.

""" + _BLOCK_FORMAT

_ENHANCE_SYSTEM = """You are a marketing copywriter.
When content is given, improve it according to the instruction.
When little or no content is given, write new content from the instruction.
Keep a professional, persuasive tone. Return only the content itself."""

# Below this many characters the input is treated as a brief, not as a draft
ENHANCE_MIN_CONTENT_LENGTH = 50


def proposal_prompts(
    client_name: str,
    calculator_type: str,
    calculator_data: Dict[str, Any],
    client_company: Optional[str] = None,
    client_industry: Optional[str] = None,
    additional_context: Optional[str] = None,
) -> Tuple[str, str]:
    system = _PROPOSAL_SYSTEM
    if calculator_type == "custom":
        system += _CUSTOM_CALCULATOR_NOTE

    lines = [f"Client: {client_name}"]
    if client_company:
        lines.append(f"Company: {client_company}")
    if client_industry:
        lines.append(f"Industry: {client_industry}")
    lines.append(f"Calculator type: {calculator_type}")
    lines.append(f"Selected services:\n{json.dumps(calculator_data, indent=2)}")
    if additional_context:
        lines.append(f"Additional context: {additional_context}")
    return system, "Write the proposal for:\n" + "\n".join(lines)


def import_prompts(extracted_text: str) -> Tuple[str, str]:
    return _IMPORT_SYSTEM, f"Convert this document text into blocks:\n\n{extracted_text}"


def enhance_prompts(content: str, instruction: str) -> Tuple[str, str]:
    if len(content.strip()) < ENHANCE_MIN_CONTENT_LENGTH:
        return _ENHANCE_SYSTEM, instruction
    return _ENHANCE_SYSTEM, f"{instruction}:\n\n{content}"
