"""
Context Builder for SOP question answering.

Formats ranked retrieval results into the text block handed to an LLM
together with the user's question, and into short source citations for
display. No model is called here.

Context layout:
    USER QUESTION: <question>

    RELEVANT DOCUMENTATION:

    --- Section 1 (Score: 0.62) ---
    States: OH
    Type: RISE
    Topics: ORDER_LIMIT, PRICING
    Content: <chunk text>
    Images:
    - [IMAGE: image_1.png - Image 1: Ohio RISE order form example]
"""

from collections.abc import Sequence

from sop_assistant.retrieval.base import RankedResult


def format_result_section(position: int, result: RankedResult) -> str:
    """Format one ranked result as a numbered context section."""
    meta = result.chunk.metadata
    lines = [f"--- Section {position} (Score: {result.score:.2f}) ---"]

    if meta.states:
        lines.append(f"States: {', '.join(sorted(meta.states))}")
    if meta.sections:
        lines.append(f"Type: {', '.join(sorted(meta.sections))}")
    if meta.topics:
        lines.append(f"Topics: {', '.join(sorted(meta.topics))}")

    lines.append(f"Content: {result.text}")

    if result.chunk.images:
        lines.append("Images:")
        for image in result.chunk.images:
            lines.append(f"- [IMAGE: {image.filename} - {image.label}]")

    return "\n".join(lines)


def build_context(query: str, results: Sequence[RankedResult], min_score: float = 0.0) -> str:
    """
    Build the LLM context block for a question.

    Args:
        query: The user's question
        results: Ranked results, best first
        min_score: Results scoring below this are left out

    Returns:
        Context text; just the question header when no result qualifies
    """
    parts = [f"USER QUESTION: {query}", "", "RELEVANT DOCUMENTATION:"]

    kept = [result for result in results if result.score >= min_score]
    if not kept:
        parts.append("(no matching documentation found)")

    for position, result in enumerate(kept, start=1):
        parts.append("")
        parts.append(format_result_section(position, result))

    return "\n".join(parts)


def format_sources(results: Sequence[RankedResult]) -> list[str]:
    """
    One citation line per result.

    Example:
        ["[1] Chunk 0 (OH, RISE) score 0.62 - Ohio (OH) RISE Orders: For RISE orders..."]
    """
    citations = []
    for position, result in enumerate(results, start=1):
        meta = result.chunk.metadata
        tags = ", ".join(sorted(meta.states) + sorted(meta.sections))
        label = f"Chunk {result.chunk_id}" + (f" ({tags})" if tags else "")
        preview = result.text if len(result.text) <= 60 else result.text[:57].rstrip() + "..."
        citations.append(f"[{position}] {label} score {result.score:.2f} - {preview}")
    return citations


def build_qa_prompt(question: str, context: str) -> str:
    """
    Wrap a context block in answering instructions.

    Args:
        question: The user's question
        context: Output of build_context()

    Returns:
        Prompt text for an instruction-following model
    """
    return f"""Answer the question using only the SOP documentation below.
Mention the state and order type a rule applies to. If an image is listed for a section you rely on, refer to it by its label.
If the documentation does not cover the question, say "The SOP does not contain information about this."

{context}

ANSWER:"""
