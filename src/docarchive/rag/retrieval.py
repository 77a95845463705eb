"""Retrieval tuning per query intent."""

from typing import Optional

from .document import RetrievalConfig

DEFAULT_INTENT = "factual_retrieval"

INTENT_TYPES = (
    "factual_retrieval",
    "conceptual_explanation",
    "comparative_analysis",
    "historical_context",
    "statistical_data",
    "methodological_inquiry",
    "application_examples",
)

# Broad intents search wider with more refinement; statistical lookups need exact matches.
RETRIEVAL_CONFIGS: dict[str, RetrievalConfig] = {
    "factual_retrieval": RetrievalConfig(index_type="approximate", k=10, distance_metric="cosine", refine_factor=2),
    "conceptual_explanation": RetrievalConfig(index_type="approximate", k=8, distance_metric="cosine", refine_factor=2),
    "comparative_analysis": RetrievalConfig(index_type="approximate", k=15, distance_metric="cosine", refine_factor=3),
    "historical_context": RetrievalConfig(index_type="approximate", k=12, distance_metric="cosine", refine_factor=3),
    "statistical_data": RetrievalConfig(index_type="exact", k=8, distance_metric="cosine", refine_factor=2),
    "methodological_inquiry": RetrievalConfig(index_type="approximate", k=12, distance_metric="cosine", refine_factor=3),
    "application_examples": RetrievalConfig(index_type="approximate", k=10, distance_metric="cosine", refine_factor=2),
}


def get_retrieval_config(intent: Optional[str] = None) -> RetrievalConfig:
    """Look up the retrieval config for an intent.

    Unknown or missing intents get the ``factual_retrieval`` config object.
    """
    return RETRIEVAL_CONFIGS.get(intent or DEFAULT_INTENT, RETRIEVAL_CONFIGS[DEFAULT_INTENT])
