"""OpenAI-compatible chat completion gateway over a dynamic model pool."""

__version__ = "1.0.0"
