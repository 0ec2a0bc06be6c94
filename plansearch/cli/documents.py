# =============================================================================
# plansearch/cli/documents.py -- CLI for Document Upload, Status and Search
# =============================================================================
#
# Runs the same DocumentService the HTTP API uses, in-process, against the
# configured SQLite database.  Useful for loading drawing sets from disk and
# checking search quality without starting the server.
#
# Supported subcommands:
#
#   upload    -- Upload a file into a scope and ingest it
#   status    -- Show a document's ingestion status and counts
#   search    -- Semantic search within a scope
#   documents -- List the documents in a scope
#   sheets    -- Show a scope's sheets in drawing-set order with cross-references
#   delete    -- Delete a document and everything derived from it
#
# A CLI process owns its ingestion task, so `upload` always runs the
# pipeline to completion before exiting.  With --wait it polls the status
# every STATUS_POLL_INTERVAL seconds and prints progress as counts change.
# =============================================================================

"""Standalone CLI for plansearch documents.

Usage::

    python -m plansearch.cli upload --scope proj-1 /path/to/A-101.pdf --wait
    python -m plansearch.cli status <document_id>
    python -m plansearch.cli search --scope proj-1 "fire rated door schedule"
    python -m plansearch.cli documents --scope proj-1
    python -m plansearch.cli delete <document_id> --yes
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

from plansearch.bootstrap import build_components
from plansearch.config.loader import build_settings
from plansearch.config.settings import Settings
from plansearch.models.document import DocumentStatus
from plansearch.models.embedding import ContentType
from plansearch.models.ingestion import DocumentStatusReport
from plansearch.services.document_service import DocumentService
from plansearch.utils.errors import PlanSearchError
from plansearch.utils.logging import configure_logging

_SNIPPET_CHARS = 160

# mimetypes does not know every extension drawing exports use.
_MIME_OVERRIDES = {
    ".md": "text/plain",
    ".txt": "text/plain",
    ".pdf": "application/pdf",
}


def _guess_mime_type(path: Path) -> str:
    override = _MIME_OVERRIDES.get(path.suffix.lower())
    if override:
        return override
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def _format_status(report: DocumentStatusReport) -> str:
    line = (
        f"{report.status.value:<11} pages={report.page_count} "
        f"chunks={report.chunk_count} embeddings={report.embedding_count}"
    )
    if report.error_message:
        line += f"  error: {report.error_message}"
    return line


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_upload(
    args: argparse.Namespace, service: DocumentService, app_settings: Settings
) -> int:
    """Upload a file and run its ingestion to completion."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    data = path.read_bytes()
    mime_type = args.mime_type or _guess_mime_type(path)
    receipt = await service.upload(
        data=data, filename=path.name, mime_type=mime_type, scope_id=args.scope
    )
    print(f"Uploaded {path.name} ({len(data):,} bytes) as {receipt.document_id}")

    if args.wait:
        interval = args.interval if args.interval is not None else app_settings.status_poll_interval
        last_line = ""
        while True:
            report = await service.get_status(receipt.document_id)
            line = _format_status(report)
            if line != last_line:
                print(f"  {line}")
                last_line = line
            if report.is_terminal:
                break
            await asyncio.sleep(interval)
    else:
        report = await service.wait_for(receipt.document_id)
        print(f"  {_format_status(report)}")

    ingestion = service.last_report(receipt.document_id)
    if ingestion is not None:
        methods = ", ".join(f"{m.value}={n}" for m, n in ingestion.chunking_methods.items())
        print(f"  Time:             {ingestion.ingestion_time:.2f}s")
        print(f"  Chunking:         {methods or 'none'}")
        if ingestion.degraded:
            print(
                f"  Degraded:         {ingestion.pages_failed} pages failed, "
                f"{ingestion.embeddings_failed} embeddings failed"
            )
        if ingestion.classification is not None:
            c = ingestion.classification
            print(
                f"  Classification:   {c.primary_type.value}/{c.subtype.value} "
                f"sheet={c.sheet_number or '-'} confidence={c.confidence:.2f}"
            )
    return 0 if report.status is DocumentStatus.READY else 1


async def _handle_status(args: argparse.Namespace, service: DocumentService) -> int:
    report = await service.get_status(args.document_id)
    print(f"{report.filename} ({report.document_id}) in scope {report.scope_id}")
    print(f"  {_format_status(report)}")
    if report.classification is not None:
        c = report.classification
        print(
            f"  Classification: {c.primary_type.value}/{c.subtype.value} "
            f"sheet={c.sheet_number or '-'} discipline={c.discipline_code or '-'} "
            f"confidence={c.confidence:.2f}"
        )
    return 0


async def _handle_search(args: argparse.Namespace, service: DocumentService) -> int:
    """Run a semantic search and print ranked results with diagnostics."""
    content_type = ContentType(args.type) if args.type else None
    response = await service.search(
        args.query,
        args.scope,
        content_type=content_type,
        limit=args.limit,
        threshold=args.threshold,
    )

    diagnostics = response.diagnostics
    if not response.results:
        print(f"No results ({diagnostics.outcome.value}).")
    for rank, result in enumerate(response.results, start=1):
        snippet = " ".join(result.content.split())[:_SNIPPET_CHARS]
        print(
            f"{rank:>3}. {result.similarity:.3f}  {result.source_document} "
            f"p.{result.source_page}  [{result.content_type.value}]"
        )
        print(f"       {snippet}")

    print()
    print(
        f"Scanned {diagnostics.candidates_scanned}, considered "
        f"{diagnostics.candidates_considered}, below threshold "
        f"{diagnostics.below_threshold}, skipped "
        f"{diagnostics.skipped_malformed + diagnostics.skipped_dimension_mismatch}"
    )
    return 0


async def _handle_documents(args: argparse.Namespace, service: DocumentService) -> int:
    documents = await service.list_documents(args.scope)
    if not documents:
        print(f"No documents in scope {args.scope}.")
        return 0

    print(f"Documents in scope {args.scope}")
    print("=" * 40)
    for doc in documents:
        print(f"  {doc.document_id}  {doc.status.value:<11} {doc.filename}")
    return 0


async def _handle_sheets(args: argparse.Namespace, service: DocumentService) -> int:
    index = await service.sheet_index(args.scope)
    if not index.disciplines:
        print(f"No ready documents in scope {args.scope}.")
        return 0

    labels = {
        sheet.document_id: sheet.sheet_number or sheet.filename
        for discipline in index.disciplines
        for sheet in discipline.sheets
    }
    print(f"Sheets in scope {args.scope} ({index.sheet_count})")
    print("=" * 40)
    for discipline in index.disciplines:
        print(f"{discipline.discipline_code}  {discipline.discipline_name}")
        for sheet in discipline.sheets:
            print(f"  {sheet.sheet_number or '-':<9} {sheet.title}")
            if sheet.references:
                cited = ", ".join(labels[d] for d in sheet.references)
                print(f"            cites: {cited}")

    if index.unresolved_references:
        missing = sorted({r.to_sheet for r in index.unresolved_references})
        print(f"Cited but not uploaded: {', '.join(missing)}")
    return 0


async def _handle_delete(args: argparse.Namespace, service: DocumentService) -> int:
    """Delete a document after confirmation."""
    report = await service.get_status(args.document_id)
    print(
        f"Deleting {report.filename}: {report.page_count} pages, "
        f"{report.chunk_count} chunks, {report.embedding_count} embeddings"
    )

    if not args.yes:
        confirm = input("  Delete? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    await service.delete(args.document_id)
    print("  Deleted.")
    return 0


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    """Open the store, dispatch one subcommand and drain pending ingestions."""
    components = build_components(app_settings)
    service: DocumentService = components["document_service"]

    async with components["document_store"]:
        try:
            if args.command == "upload":
                return await _handle_upload(args, service, app_settings)
            if args.command == "status":
                return await _handle_status(args, service)
            if args.command == "search":
                return await _handle_search(args, service)
            if args.command == "documents":
                return await _handle_documents(args, service)
            if args.command == "sheets":
                return await _handle_sheets(args, service)
            if args.command == "delete":
                return await _handle_delete(args, service)
            return 1
        except PlanSearchError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        finally:
            await service.shutdown()


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the documents CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m plansearch.cli",
        description="Upload, inspect and search plansearch documents.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show pipeline logs at LOG_LEVEL"
    )
    subparsers = parser.add_subparsers(dest="command", help="Document commands")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Upload and ingest a file")
    upload_parser.add_argument("file", help="Path to a PDF or text file")
    upload_parser.add_argument("--scope", required=True, help="Scope (project) id")
    upload_parser.add_argument(
        "--mime-type",
        dest="mime_type",
        default=None,
        help="Override the mime type guessed from the file extension",
    )
    upload_parser.add_argument(
        "--wait", action="store_true", help="Poll and print status until ingestion finishes"
    )
    upload_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Polling interval in seconds (default: STATUS_POLL_INTERVAL)",
    )

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show a document's status")
    status_parser.add_argument("document_id", help="Document id")

    # -- search --
    search_parser = subparsers.add_parser("search", help="Semantic search within a scope")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument("--scope", required=True, help="Scope (project) id")
    search_parser.add_argument(
        "--type",
        choices=[c.value for c in ContentType],
        default=None,
        help="Restrict results to one embedding content type",
    )
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum results")
    search_parser.add_argument(
        "--threshold", type=float, default=None, help="Minimum cosine similarity"
    )

    # -- documents --
    documents_parser = subparsers.add_parser("documents", help="List a scope's documents")
    documents_parser.add_argument("--scope", required=True, help="Scope (project) id")

    # -- sheets --
    sheets_parser = subparsers.add_parser(
        "sheets", help="Show a scope's sheets in drawing-set order with cross-references"
    )
    sheets_parser.add_argument("--scope", required=True, help="Scope (project) id")

    # -- delete --
    delete_parser = subparsers.add_parser("delete", help="Delete a document")
    delete_parser.add_argument("document_id", help="Document id")
    delete_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse arguments, load settings and dispatch."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = build_settings()
    configure_logging(log_level=app_settings.log_level if args.verbose else "WARNING")

    exit_code = asyncio.run(_run(args, app_settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
