"""Configuration validation for the generation endpoint credentials."""

from __future__ import annotations


def validate_or_raise(model: str | None, api_key: str | None) -> None:
    """Validate that a model and an API key are configured.

    Model names are not checked against a catalog; any model served by an
    OpenAI-compatible endpoint is accepted.
    """
    if not api_key:
        raise ValueError(
            "PARLEY_API_KEY is required. Configure it in the config file under "
            "'generation.api_key' or via env PARLEY_API_KEY / OPENAI_API_KEY."
        )
    if not model:
        raise ValueError("generation.model is not configured")
