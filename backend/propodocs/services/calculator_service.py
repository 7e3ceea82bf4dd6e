"""
Propodocs Backend — Calculator Generation Service
===================================================

What:  Generates pricing-calculator schemas from a service description, and
       edits single blocks (tier, add-on, column) of an existing calculator.
How:   Builds prompts, runs them through the GenerationChain, then checks the
       artifact against the scaffold rules the prompt asked for.

Validation Policy:
    Scaffold violations (wrong tier count, non-increasing prices, unknown
    add-on categories, duplicate ids) are logged and returned as warnings
    next to the schema. Nothing is corrected silently; the user decides.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from propodocs.config import settings
from propodocs.exceptions import ValidationError
from propodocs.schemas.generation import (
    CalculatorGenerationResponse,
    EditBlockResponse,
)
from propodocs.services.generation_chain import (
    GenerationChain,
    InvalidOutputError,
    generation_chain,
)
from propodocs.services.llm_base import GenerationOptions
from propodocs.services.prompts import block_edit_prompts, calculator_prompts

logger = logging.getLogger(__name__)

CALCULATOR_LAYOUTS = ("hybrid", "tiered", "itemized")
TIERED_LAYOUTS = ("hybrid", "tiered")
EXPECTED_TIER_COUNT = 3
BLOCK_TYPES = ("tier", "addon", "column")


def _require_object(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise InvalidOutputError(f"expected a JSON object, got {type(value).__name__}")
    return value


def _is_number(value: Any) -> bool:
    """Finite int/float; json.loads accepts NaN and Infinity literals."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _check_ids(items: List[Any], kind: str) -> List[str]:
    """Warnings for ids that are not scalars, and for duplicated ids."""
    warnings: List[str] = []
    seen = set()
    dupes: List[Any] = []
    for position, item in enumerate(items, start=1):
        item_id = item.get("id") if isinstance(item, dict) else None
        if item_id is None:
            continue
        if isinstance(item_id, bool) or not isinstance(item_id, (str, int)):
            warnings.append(f"{kind} {position} has a non-scalar id {item_id!r}")
            continue
        if item_id in seen and item_id not in dupes:
            dupes.append(item_id)
        seen.add(item_id)
    warnings.extend(f"duplicate {kind} id {item_id!r}" for item_id in dupes)
    return warnings


def validate_calculator_schema(
    schema: Dict[str, Any],
    categories: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Check a generated calculator against the scaffold rules.

    Args:
        schema:     Parsed calculator JSON
        categories: Allowed add-on categories (default: CALCULATOR_ADDON_CATEGORIES)

    Returns:
        Human-readable warnings, empty when the schema follows every rule.
    """
    allowed = set(categories if categories is not None else settings.addon_categories_list)
    warnings: List[str] = []

    layout = schema.get("layout")
    if layout not in CALCULATOR_LAYOUTS:
        warnings.append(f"layout {layout!r} is not one of {', '.join(CALCULATOR_LAYOUTS)}")

    tiers = schema.get("tiers") or []
    if not isinstance(tiers, list):
        warnings.append("tiers is not a list")
        tiers = []

    # Itemized calculators carry no tiers; every other layout needs the three
    if layout != "itemized" and len(tiers) != EXPECTED_TIER_COUNT:
        warnings.append(f"expected {EXPECTED_TIER_COUNT} tiers, got {len(tiers)}")

    # Compared against the last tier with a usable price, so a bad price in
    # the middle does not hide an ordering violation around it
    previous: Optional[float] = None
    previous_position = 0
    for position, tier in enumerate(tiers, start=1):
        price = tier.get("monthlyPrice") if isinstance(tier, dict) else None
        if not _is_number(price):
            warnings.append(f"tier {position} has no numeric monthly price")
            continue
        if previous is not None and price <= previous:
            warnings.append(
                f"tier {position} monthly price {_fmt(price)} is not greater than "
                f"tier {previous_position} monthly price {_fmt(previous)}"
            )
        previous = price
        previous_position = position

    warnings.extend(_check_ids(tiers, "tier"))

    addons = schema.get("addOns") or []
    if not isinstance(addons, list):
        warnings.append("addOns is not a list")
        addons = []

    for addon in addons:
        if not isinstance(addon, dict):
            warnings.append("add-on entry is not an object")
            continue
        label = addon.get("id") or addon.get("name") or "?"
        category = addon.get("category")
        if not category:
            warnings.append(f"add-on {label!r} has no category")
        elif category not in allowed:
            warnings.append(f"add-on {label!r} has unknown category {category!r}")

    warnings.extend(_check_ids(addons, "add-on"))

    return warnings


class CalculatorService:
    """Calculator generation and block editing on top of a GenerationChain."""

    def __init__(self, chain: GenerationChain):
        self.chain = chain

    async def generate_calculator(self, prompt: str) -> CalculatorGenerationResponse:
        """
        Raises:
            ProvidersUnconfiguredError, AllProvidersFailedError (from the chain)
        """
        categories = settings.addon_categories_list
        system_prompt, user_prompt = calculator_prompts(prompt, categories)

        result = await self.chain.run(
            system_prompt,
            user_prompt,
            GenerationOptions(json_output=True),
            parser=_require_object,
        )

        warnings = validate_calculator_schema(result.value, categories)
        if warnings:
            logger.warning(
                "Calculator from %s violates %d scaffold rule(s): %s",
                result.provider, len(warnings), warnings,
            )
        logger.info(
            "Generated calculator '%s' via %s (%d tiers, %d add-ons)",
            result.value.get("name"), result.provider,
            len(result.value.get("tiers") or []), len(result.value.get("addOns") or []),
        )
        return CalculatorGenerationResponse(
            calculator=result.value,
            provider=result.provider,
            warnings=warnings,
        )

    async def edit_block(
        self,
        block_type: str,
        block_data: Dict[str, Any],
        instruction: str,
        full_schema: Optional[Dict[str, Any]] = None,
    ) -> EditBlockResponse:
        """
        Rewrite one calculator block according to a free-text instruction.

        The block keeps its original id whatever the model returns: other
        parts of the calculator (selections, formulas) reference it.
        """
        if block_type not in BLOCK_TYPES:
            raise ValidationError(
                message=f"Block type must be one of: {', '.join(BLOCK_TYPES)}",
                field="blockType",
            )

        system_prompt, user_prompt = block_edit_prompts(
            block_type, block_data, instruction, full_schema
        )
        result = await self.chain.run(
            system_prompt,
            user_prompt,
            GenerationOptions(json_output=True, temperature=0.4),
            parser=_require_object,
        )

        block = dict(result.value)
        original_id = block_data.get("id")
        if original_id is not None:
            if block.get("id") != original_id:
                logger.debug("Restoring %s id %r (model returned %r)", block_type, original_id, block.get("id"))
            block["id"] = original_id

        logger.info("Edited %s block %r via %s", block_type, original_id, result.provider)
        return EditBlockResponse(block=block, provider=result.provider)


# ── Singleton Instance ────────────────────────────────────────────────────
calculator_service = CalculatorService(generation_chain)
