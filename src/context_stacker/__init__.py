"""context_stacker: stage files into tracks and render them as LLM context."""

__version__ = "0.3.0"
