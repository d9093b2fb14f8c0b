"""Command-line entry point.

Run a blocking sync::

    python -m knowledge_rag sync --mode incremental

Assemble context for a question::

    python -m knowledge_rag context "如何申请退款?" --k 8 --min-score 0.4
"""

from __future__ import annotations

import argparse
import logging
import sys

from knowledge_rag.config import settings
from knowledge_rag.ingestion.embedder import get_embeddings
from knowledge_rag.ingestion.models import SyncMode, SyncStatus
from knowledge_rag.ingestion.sync import SyncService
from knowledge_rag.retrieval.chroma_store import ChromaVectorStore
from knowledge_rag.retrieval.models import MetadataFilter
from knowledge_rag.retrieval.retriever import SemanticRetriever
from knowledge_rag.store import FileDocumentStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="knowledge_rag", description="Knowledge ingestion and retrieval")
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Synchronise the remote catalog into the vector index")
    sync.add_argument(
        "--mode",
        choices=[m.value for m in SyncMode],
        default=SyncMode.INCREMENTAL.value,
        help="full: re-ingest everything; incremental: only new or updated items",
    )

    ctx = sub.add_parser("context", help="Print the assembled context for a question")
    ctx.add_argument("query")
    ctx.add_argument("--k", type=int, default=None)
    ctx.add_argument("--min-score", type=float, default=None)
    ctx.add_argument("--max-length", type=int, default=None)
    ctx.add_argument("--category", default=None, help="only search chunks of this category")
    ctx.add_argument("--path", default=None, help="only search chunks under this catalog path")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level)

    embedder = get_embeddings(settings)
    store = ChromaVectorStore.from_settings(settings, embedder)

    if args.command == "sync":
        service = SyncService.from_settings(settings, FileDocumentStore(settings.articles_dir), store)
        report = service.run_sync(args.mode)
        print(report.model_dump_json(indent=2))
        return 0 if report.status is SyncStatus.COMPLETED else 1

    retriever = SemanticRetriever.from_settings(settings, store, embedder)
    context = retriever.build_context(
        args.query,
        k=args.k,
        min_score=args.min_score,
        max_length=args.max_length,
        filters=MetadataFilter.scope(category_id=args.category, path=args.path),
    )
    print(context)
    return 0


if __name__ == "__main__":
    sys.exit(main())
