from .provider import GenerationClient, GenerationStream

__all__ = ["GenerationClient", "GenerationStream"]
