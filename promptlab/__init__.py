"""promptlab: run prompts against LLM providers, stream and compare the results."""

__version__ = "1.0.0"
