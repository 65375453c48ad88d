"""
Model pricing, tier resolution and cost calculations.

Prices are expressed in cents per million tokens. Costs are computed with
Decimal and always rounded UP to the 0.01-cent grid so a tenant is never
charged less than the backend charges us.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_UP, Decimal
from enum import Enum
from typing import Union

from src.config import get_settings

_MILLION = Decimal(1_000_000)
_CENT_GRID = Decimal("0.01")

# Rough heuristic for pre-flight estimates only; not billing-accurate.
CHARS_PER_TOKEN = 4


class UnknownModelError(ValueError):
    """Model alias or identifier has no pricing entry."""


class ModelProvider(str, Enum):
    """Backends the transport can be built against."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    MOCK = "mock"


class ModelTier(str, Enum):
    """Cost/quality tier a caller asks for; resolved to a concrete model per provider."""

    FAST = "fast"
    NANO = "nano"
    BUDGET = "budget"
    QUALITY = "quality"


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for one model, in cents."""

    input_cents_per_million: Decimal
    output_cents_per_million: Decimal


def _price(inp: str, out: str) -> ModelPricing:
    return ModelPricing(Decimal(inp), Decimal(out))


# Fixed pricing table, cents per 1M tokens
MODEL_PRICING: dict[str, ModelPricing] = {
    # OpenAI
    "gpt-5-mini": _price("25", "200"),
    "gpt-5": _price("500", "1500"),
    "gpt-4.1-nano": _price("10", "40"),
    "gpt-4.1-mini": _price("15", "60"),
    "gpt-4.1": _price("200", "800"),
    "gpt-4o-mini": _price("15", "60"),
    "gpt-4o": _price("250", "1000"),
    # Anthropic
    "claude-sonnet-4-5-20250929": _price("300", "1500"),
    "claude-haiku-4-5-20251001": _price("100", "500"),
    "claude-opus-4-5-20251101": _price("500", "2500"),
    # Gemini
    "gemini-2.5-pro": _price("125", "1000"),
    "gemini-2.5-flash": _price("30", "250"),
    "gemini-2.5-flash-lite": _price("10", "40"),
}

_OPENAI_TIERS: dict[ModelTier, str] = {
    ModelTier.FAST: "gpt-5-mini",
    ModelTier.NANO: "gpt-4.1-nano",
    ModelTier.BUDGET: "gpt-4.1-mini",
    ModelTier.QUALITY: "gpt-5",
}

MODEL_TIERS: dict[ModelProvider, dict[ModelTier, str]] = {
    ModelProvider.OPENAI: _OPENAI_TIERS,
    ModelProvider.ANTHROPIC: {
        ModelTier.FAST: "claude-sonnet-4-5-20250929",
        ModelTier.NANO: "claude-haiku-4-5-20251001",
        ModelTier.BUDGET: "claude-haiku-4-5-20251001",
        ModelTier.QUALITY: "claude-opus-4-5-20251101",
    },
    ModelProvider.GEMINI: {
        ModelTier.FAST: "gemini-2.5-flash",
        ModelTier.NANO: "gemini-2.5-flash-lite",
        ModelTier.BUDGET: "gemini-2.5-flash-lite",
        ModelTier.QUALITY: "gemini-2.5-pro",
    },
    # The offline backend bills as if it were OpenAI
    ModelProvider.MOCK: _OPENAI_TIERS,
}

# Older prompt code names models after Claude families
LEGACY_ALIASES: dict[str, ModelTier] = {
    "sonnet": ModelTier.FAST,
    "haiku": ModelTier.NANO,
    "opus": ModelTier.QUALITY,
}

for _provider in ModelProvider:
    _missing = set(ModelTier) - set(MODEL_TIERS[_provider])
    if _missing:
        raise RuntimeError(f"Provider {_provider.value} has no model for tiers: {sorted(t.value for t in _missing)}")


def pricing_table() -> dict[str, ModelPricing]:
    """Built-in table merged with `models:` overrides from config/pricing.yaml."""
    overrides = get_settings().pricing.get("models") or {}
    if not overrides:
        return MODEL_PRICING
    table = dict(MODEL_PRICING)
    for model_id, entry in overrides.items():
        table[str(model_id)] = _price(str(entry["input"]), str(entry["output"]))
    return table


def get_pricing(model_id: str) -> ModelPricing:
    table = pricing_table()
    if model_id not in table:
        raise UnknownModelError(f"Unsupported model: {model_id}")
    return table[model_id]


def parse_tier(name: str) -> ModelTier:
    """Map a tier name or legacy alias ("haiku") to a ModelTier."""
    key = name.strip().lower()
    if key in LEGACY_ALIASES:
        return LEGACY_ALIASES[key]
    try:
        return ModelTier(key)
    except ValueError:
        raise UnknownModelError(f"Unknown model tier: {name}") from None


def resolve_model(model: Union[ModelTier, str], provider: ModelProvider) -> str:
    """Resolve a tier, legacy alias or concrete model id to a priced model id."""
    if isinstance(model, ModelTier):
        return MODEL_TIERS[provider][model]
    if model in pricing_table():
        return model
    return MODEL_TIERS[provider][parse_tier(model)]


def cost(model_id: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in cents, rounded up to the nearest 0.01 cent.

    Raises:
        UnknownModelError: if the model has no pricing entry.
    """
    pricing = get_pricing(model_id)
    raw = (Decimal(input_tokens) / _MILLION) * pricing.input_cents_per_million + (
        Decimal(output_tokens) / _MILLION
    ) * pricing.output_cents_per_million
    return float(raw.quantize(_CENT_GRID, rounding=ROUND_UP))


def estimate(model_id: str, input_chars: int, expected_output_tokens: int = 1000) -> float:
    """Pre-flight cost estimate in cents.

    Uses a fixed 4-characters-per-token heuristic for the input side, so this
    is an approximation for budgeting and UI hints, never a billing amount.
    """
    estimated_input_tokens = math.ceil(input_chars / CHARS_PER_TOKEN)
    return cost(model_id, estimated_input_tokens, expected_output_tokens)


def estimate_pipeline_cost(
    expected_content_length: int,
    include_outline: bool = False,
    include_faqs: bool = False,
    include_links: bool = False,
    provider: ModelProvider = ModelProvider.OPENAI,
) -> int:
    """Approximate whole-cent cost of a full pipeline run (article always included)."""
    fast = resolve_model(ModelTier.FAST, provider)
    nano = resolve_model(ModelTier.NANO, provider)
    total = 0.0
    if include_outline:
        total += estimate(fast, 2000, 1500)
    total += estimate(fast, 3000, expected_content_length)
    if include_faqs:
        total += estimate(nano, 2000, 500)
    if include_links:
        total += estimate(nano, 3000, 500)
    return math.ceil(round(total, 2))
