"""Token cost estimation.

Static USD prices per million tokens. Models are matched by longest prefix so
dated snapshots (``gpt-4o-2024-08-06``) price like their family. Unknown
providers and models cost zero.
"""

from pydantic import BaseModel, ConfigDict

from .models import Providers, Usage


class CostPer1M(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: float = 0.0
    output: float = 0.0


FREE = CostPer1M()

OPENAI_COSTS: dict[str, CostPer1M] = {
    "gpt-4o": CostPer1M(input=2.5, output=10.0),
    "gpt-4o-mini": CostPer1M(input=0.15, output=0.6),
    "gpt-4.1": CostPer1M(input=2.0, output=8.0),
    "gpt-4.1-mini": CostPer1M(input=0.4, output=1.6),
    "gpt-4.1-nano": CostPer1M(input=0.1, output=0.4),
    "o1": CostPer1M(input=15.0, output=60.0),
    "o3": CostPer1M(input=2.0, output=8.0),
    "o3-mini": CostPer1M(input=1.1, output=4.4),
    "o4-mini": CostPer1M(input=1.1, output=4.4),
}

ANTHROPIC_COSTS: dict[str, CostPer1M] = {
    "claude-3-haiku": CostPer1M(input=0.25, output=1.25),
    "claude-3-5-haiku": CostPer1M(input=0.8, output=4.0),
    "claude-3-5-sonnet": CostPer1M(input=3.0, output=15.0),
    "claude-3-7-sonnet": CostPer1M(input=3.0, output=15.0),
    "claude-sonnet-4": CostPer1M(input=3.0, output=15.0),
    "claude-3-opus": CostPer1M(input=15.0, output=75.0),
    "claude-opus-4": CostPer1M(input=15.0, output=75.0),
}

COST_TABLES: dict[Providers, dict[str, CostPer1M]] = {
    Providers.openai: OPENAI_COSTS,
    Providers.azure: OPENAI_COSTS,
    Providers.anthropic: ANTHROPIC_COSTS,
    Providers.google_vertex: ANTHROPIC_COSTS,
    Providers.amazon_bedrock: ANTHROPIC_COSTS,
}


def _normalize_model(model: str) -> str:
    # Bedrock model ids carry a vendor prefix, optionally behind a region prefix
    _, _, rest = model.rpartition("anthropic.")
    return rest.lower()


def get_cost_per_1m(provider: Providers | str, model: str) -> CostPer1M:
    """Price of one million input and output tokens."""
    try:
        table = COST_TABLES.get(Providers(provider))
    except ValueError:
        return FREE
    if not table:
        return FREE

    name = _normalize_model(model)
    matches = [prefix for prefix in table if name.startswith(prefix)]
    if not matches:
        return FREE
    return table[max(matches, key=len)]


def estimate_cost(usage: Usage, provider: Providers | str, model: str) -> float:
    """Estimated USD cost of ``usage`` on ``model``."""
    cost = get_cost_per_1m(provider, model)
    return (
        usage.prompt_tokens * cost.input + usage.completion_tokens * cost.output
    ) / 1_000_000
