#!/usr/bin/env python3
"""Generate an Insight Atlas guide from a local book file.

Runs extraction and the full insight pipeline without the API server or
database. Progress is printed to stdout instead of a WebSocket.

Usage:
    python scripts/generate_insight.py --file book.pdf

    python scripts/generate_insight.py \
        --file book.epub \
        --title "Book Title" \
        --author "Author Name" \
        --output insight.json

Run from backend directory. Needs ANTHROPIC_API_KEY and/or OPENAI_API_KEY.
"""

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Add backend to path so `src` resolves
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.exceptions import ExtractionError, FileTooLargeError, InvalidFileTypeError
from src.services.errors import PipelineError
from src.services.extraction_service import extract_content
from src.services.insight_pipeline import generate_premium_insight
from src.llm import LLMError


def print_progress(stage: str, percent: int) -> None:
    print(f"  [{percent:3d}%] {stage}")


async def run(args: argparse.Namespace) -> int:
    data = args.file.read_bytes()
    mime_type, _ = mimetypes.guess_type(args.file.name)

    try:
        content = extract_content(data, args.file.name, mime_type)
    except (FileTooLargeError, InvalidFileTypeError, ExtractionError) as e:
        print(f"Error: {e}")
        return 1

    title = args.title or content.title
    author = args.author or content.author
    print(f"Book: {title}" + (f" by {author}" if author else ""))
    print(f"Extracted {content.wordCount:,} words ({content.fileType.value})")

    try:
        insight = await generate_premium_insight(title, author, content.text, on_progress=print_progress)
    except (PipelineError, LLMError) as e:
        print(f"\nGeneration failed: {e}")
        return 1

    output = args.output or args.file.with_suffix(".insight.json")
    output.write_text(insight.model_dump_json(indent=2), encoding="utf-8")

    print("=" * 70)
    print(f"Title: {insight.title}")
    print(f"Sections: {len(insight.sections)}")
    print(f"Words: {insight.wordCount:,}")
    print(f"Completeness score: {insight.completenessScore}")
    if insight.degradedStages:
        print(f"Degraded stages: {', '.join(insight.degradedStages)}")
    if insight.audioUrl:
        print(f"Audio: {insight.audioUrl} (~{insight.audioDuration}s)")
    print(f"Written to {output}")
    print("=" * 70)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Generate a premium insight guide from a PDF, EPUB or TXT book"
    )
    parser.add_argument("--file", type=Path, required=True, help="Book file to process")
    parser.add_argument("--title", help="Override the extracted title")
    parser.add_argument("--author", help="Override the extracted author")
    parser.add_argument("--output", type=Path, help="Output JSON path (default: <file>.insight.json)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show pipeline logs")

    args = parser.parse_args()

    if not args.file.exists():
        parser.error(f"File not found: {args.file}")

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
