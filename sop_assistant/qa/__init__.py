"""
Question-answering helpers for the SOP assistant.

Public API:
    build_context: Format ranked results into an LLM context block
    format_sources: One citation line per result
    build_qa_prompt: Wrap a context block in answering instructions
"""

from sop_assistant.qa.context_builder import build_context, build_qa_prompt, format_sources

__all__ = ["build_context", "build_qa_prompt", "format_sources"]
