"""
SOP Assistant command line.

Indexes a chunk file (JSON/YAML) or a plain-text SOP document and answers
one query against it, printing the ranked sections with their score
breakdown. Without --chunks or --text the bundled sample SOP is used.
"""

import argparse
import json
import sys
from pathlib import Path

from sop_assistant.chunking import ChunkBuilder, load_chunks
from sop_assistant.config import DEBUG_MODE, RETRIEVAL_MAX_RESULTS, SAMPLE_CHUNKS_FILE
from sop_assistant.logging_config import close_debug_log, debug_log, error, info
from sop_assistant.qa import build_context, format_sources
from sop_assistant.retrieval import SearchFilters, SOPRetriever
from sop_assistant.retrieval.exceptions import RetrievalError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sop_assistant",
        description="SOP Assistant - search an SOP document with query-aware hybrid retrieval",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Query the bundled sample SOP
  python -m sop_assistant "What are the order limits for Ohio?"

  # Query a processed chunk file with reciprocal-rank fusion
  python -m sop_assistant "battery invoices" --chunks chunks.json --fusion rrf

  # Chunk and query a plain-text SOP, printing the LLM context block
  python -m sop_assistant "How do I split a batch?" --text sop.txt --context

  # Debug mode (verbose logging)
  DEBUG=true python -m sop_assistant "NJ substitution rules"
        """
    )

    parser.add_argument('query', nargs='?', help='Question to search for')

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        '--chunks',
        type=Path,
        help='JSON or YAML file with chunk records (default: bundled sample SOP)'
    )
    source.add_argument(
        '--text',
        type=Path,
        help='Plain-text SOP document to chunk and tag before searching'
    )

    parser.add_argument(
        '--max-results', '-k',
        type=int,
        default=RETRIEVAL_MAX_RESULTS,
        help=f'Number of results (default: {RETRIEVAL_MAX_RESULTS})'
    )
    parser.add_argument(
        '--fusion',
        default='weighted',
        choices=['weighted', 'rrf'],
        help='Score fusion strategy (default: weighted)'
    )
    parser.add_argument('--state', action='append', default=[], help='Explicit state filter (repeatable)')
    parser.add_argument('--section', action='append', default=[], help='Explicit section filter (repeatable)')
    parser.add_argument('--topic', action='append', default=[], help='Explicit topic filter (repeatable)')
    parser.add_argument('--context', action='store_true', help='Print the LLM context block')
    parser.add_argument('--json', action='store_true', help='Print the full response as JSON')
    parser.add_argument('--stats', action='store_true', help='Print index statistics')

    return parser


def _load_source(args: argparse.Namespace) -> list:
    if args.text:
        text = args.text.read_text(encoding='utf-8')
        return ChunkBuilder().build(text)
    return load_chunks(args.chunks or SAMPLE_CHUNKS_FILE)


def _explicit_filters(args: argparse.Namespace) -> SearchFilters | None:
    if not (args.state or args.section or args.topic):
        return None
    return SearchFilters(
        states=frozenset(value.upper() for value in args.state),
        sections=frozenset(value.upper() for value in args.section),
        topics=frozenset(value.upper() for value in args.topic),
    )


def _print_response(response) -> None:
    print("\n" + "=" * 60)
    print(f"QUERY: {response.query}")
    print("=" * 60)
    print(f"Understood: {response.analysis.summary()}")
    print(f"Question type: {response.analysis.question_type.value} | "
          f"Confidence: {response.analysis.confidence:.2f}")
    print(f"Filters: {response.filters.to_dict() or 'none'}"
          + (" (no match, searched all sections)" if response.fallback_applied else ""))

    if not response.results:
        print("\nNo results.")

    for result in response.results:
        scores = result.scores
        print(f"\n[{result.rank}] Chunk {result.chunk_id}  score {result.score:.3f}")
        print(f"  semantic {scores.semantic:.3f} | keyword {scores.keyword:.3f} | "
              f"metadata {scores.metadata:.3f} | image {scores.image:.3f}")
        print(f"  {result.explanation}")
        print(f"  {result.text[:200]}")
        for image in result.chunk.images:
            print(f"  [IMAGE: {image.filename} - {image.label}]")

    print("\n" + "=" * 60)
    print(f"{len(response)} of {response.total_candidates} candidates | "
          f"{response.processing_time_ms:.1f}ms")
    print("=" * 60)


def main(argv: list[str] | None = None) -> int:
    """
    Run the command line.

    Returns:
        Process exit code (0 on success, 1 on input errors, 2 on usage errors)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.query and not args.stats:
        parser.print_usage(sys.stderr)
        print("error: a query is required unless --stats is given", file=sys.stderr)
        return 2

    try:
        return _run(args)
    finally:
        close_debug_log()


def _run(args: argparse.Namespace) -> int:
    try:
        chunks = _load_source(args)
        retriever = SOPRetriever(fusion_strategy=args.fusion)
        stats = retriever.build_from_chunks(chunks)
        info(f"[CLI] Indexed {stats['chunk_count']} chunks")

        if args.stats:
            print(json.dumps(stats, indent=2, default=str))
            if not args.query:
                return 0

        response = retriever.retrieve(
            args.query,
            filters=_explicit_filters(args),
            max_results=args.max_results,
        )
    except (OSError, RetrievalError, ValueError) as e:
        error(f"[CLI] {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1

    if DEBUG_MODE:
        debug_log(f"[CLI] {len(response)} results for '{args.query}'")

    if args.json:
        print(json.dumps(response.to_dict(), indent=2))
    else:
        _print_response(response)
        print("\nSources:")
        for line in format_sources(response.results):
            print(f"  {line}")

    if args.context:
        print("\n" + build_context(response.query, response.results))

    return 0


if __name__ == "__main__":
    sys.exit(main())
