"""llm_globber — gather a set of files into one text artifact for an LLM."""

__version__ = "0.3.0"
