"""
Cost Estimation

Converts token usage of a text-completion call into an estimated USD cost.
"""

from layout_gauge_core.domain.constants import MODEL_PRICING


def estimate_cost_usd(model_name: str | None, input_tokens: int, output_tokens: int) -> float:
    """
    Estimate the cost of a call

    Cost = input tokens / 1M * input price + output tokens / 1M * output price

    Args:
        model_name: Model name (a provider prefix such as "openai/" is ignored)
        input_tokens: Prompt tokens
        output_tokens: Completion tokens

    Returns:
        Cost in USD. 0 for models without pricing.

    Raises:
        ValueError: If a token count is negative
    """
    if input_tokens < 0:
        raise ValueError("input_tokens must be non-negative")
    if output_tokens < 0:
        raise ValueError("output_tokens must be non-negative")

    name = (model_name or "").removeprefix("openai/")
    pricing = MODEL_PRICING.get(name)
    if pricing is None:
        return 0.0

    return (
        (input_tokens / 1_000_000) * pricing["input"] +
        (output_tokens / 1_000_000) * pricing["output"]
    )
