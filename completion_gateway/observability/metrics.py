from prometheus_client import (
    Counter,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


cache_events = Counter(
    "llm_cache_events_total",
    "LLM response cache activity",
    ["event"],
)

completion_attempts = Counter(
    "llm_completion_attempts_total",
    "Completion attempts by provider and outcome",
    ["provider", "outcome"],
)

llm_tokens = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["provider", "direction"],
)


def metrics_payload() -> tuple[bytes, str]:
    """Return the exposition body and its content type for a scrape endpoint."""
    return generate_latest(), CONTENT_TYPE_LATEST
