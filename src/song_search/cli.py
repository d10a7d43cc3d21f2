from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import threading
from pathlib import Path
from typing import List, TextIO

from .clients.oai import EmbeddingClient
from .config import Config, configure_logging, load_config
from .errors import LoadError, ProviderError, StoreError
from .ingest import IngestStats, ingest_with_config
from .records import load_many
from .search import SearchService
from .store import EmbeddingBatch, PgVectorStore

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError("value must be a positive integer")
    return ivalue


def _non_negative_float(value: str) -> float:
    fvalue = float(value)
    if fvalue < 0:
        raise argparse.ArgumentTypeError("value must be >= 0")
    return fvalue


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m song_search",
        description="Embed song lyrics and search them by similarity.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config TOML (defaults to ./config.toml when present).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="<command>", required=True)

    ingest_cmd = subparsers.add_parser(
        "ingest", help="Embed songs from CSV files and store them in PostgreSQL."
    )
    embed_cmd = subparsers.add_parser(
        "embed", help="Embed songs from CSV files into a YAML batch file."
    )
    for cmd in (ingest_cmd, embed_cmd):
        cmd.add_argument(
            "inputs",
            nargs="*",
            type=Path,
            help="CSV files with Artist, Title, Album, Lyric columns (overrides config).",
        )
        cmd.add_argument(
            "--concurrency",
            "-j",
            type=_positive_int,
            default=None,
            help="Maximum songs embedded/stored at once (overrides config).",
        )
        cmd.add_argument(
            "--record-timeout",
            type=_non_negative_float,
            default=None,
            help="Seconds allowed per song, 0 to disable (overrides config).",
        )

    ingest_cmd.add_argument(
        "--store-errors-fatal",
        action="store_true",
        help="Abort the whole run on the first database error.",
    )
    embed_cmd.add_argument(
        "--output",
        "-o",
        type=Path,
        default=None,
        help="Destination YAML file; existing entries are kept and skipped (overrides config).",
    )

    query_cmd = subparsers.add_parser("query", help="Interactive search against PostgreSQL.")
    query_cmd.add_argument("-k", type=_positive_int, default=None, help="Results per query.")

    index_cmd = subparsers.add_parser(
        "query-index", help="Interactive search against an in-memory index built from a YAML batch."
    )
    index_cmd.add_argument("--batch", "-b", type=Path, default=None, help="YAML batch file (overrides config).")
    index_cmd.add_argument("-k", type=_positive_int, default=None, help="Results per query.")

    return parser


def _apply_overrides(cfg: Config, args: argparse.Namespace) -> None:
    if getattr(args, "concurrency", None):
        cfg.ingest.CONCURRENCY = args.concurrency
    if getattr(args, "record_timeout", None) is not None:
        cfg.ingest.RECORD_TIMEOUT = args.record_timeout or None
    if getattr(args, "store_errors_fatal", False):
        cfg.ingest.STORE_ERRORS_FATAL = True


def _input_paths(cfg: Config, args: argparse.Namespace) -> List[Path]:
    return list(args.inputs) if args.inputs else [Path(p) for p in cfg.ingest.INPUT_PATHS]


def _report(stats: IngestStats, out: TextIO) -> None:
    out.write(
        f"Processed {stats.processed}/{stats.total} songs: {stats.inserted} stored, "
        f"{stats.skipped} already present, {stats.duplicates} duplicates, {stats.failed} failed\n"
    )


async def run_ingest(cfg: Config, paths: List[Path], out: TextIO = sys.stdout) -> IngestStats:
    songs = load_many(paths)
    client = EmbeddingClient.from_config(cfg)
    try:
        store = await PgVectorStore.from_config(cfg)
        try:
            stats = await ingest_with_config(songs, client=client, store=store, cfg=cfg)
        finally:
            await store.close()
    finally:
        await client.aclose()
    _report(stats, out)
    return stats


async def run_embed(cfg: Config, paths: List[Path], output: Path, out: TextIO = sys.stdout) -> IngestStats:
    songs = load_many(paths)
    batch = EmbeddingBatch.load_or_empty(output, cfg.embedding.EMB_DIM)
    client = EmbeddingClient.from_config(cfg)
    try:
        stats = await ingest_with_config(songs, client=client, store=batch, cfg=cfg)
    finally:
        batch.save(output)
        await client.aclose()
    _report(stats, out)
    return stats


class _LineReader:
    """
    Lines from ``stdin`` for the interactive loop.

    Descriptor-backed streams are read with ``os.read`` on a daemon thread that
    feeds an asyncio queue. Nothing waits on that thread at shutdown, so
    Ctrl-C ends the run while a read is pending. In-memory streams have no
    descriptor and never block; they are read directly.
    """

    def __init__(self, stdin: TextIO) -> None:
        self._stdin = stdin
        try:
            self._fd: int | None = stdin.fileno()
        except (AttributeError, OSError):
            self._fd = None
        self._encoding = getattr(stdin, "encoding", None) or "utf-8"
        self._lines: asyncio.Queue[str] | None = None

    async def readline(self) -> str:
        """Next line including its newline, or ``""`` at EOF."""
        if self._fd is None:
            return self._stdin.readline()
        if self._lines is None:
            self._lines = asyncio.Queue()
            threading.Thread(
                target=self._pump,
                args=(asyncio.get_running_loop(), self._lines),
                name="stdin-reader",
                daemon=True,
            ).start()
        return await self._lines.get()

    def _pump(self, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str]) -> None:
        pending = b""
        while True:
            try:
                chunk = os.read(self._fd, 4096)
            except OSError:
                chunk = b""
            pending += chunk
            *complete, pending = pending.split(b"\n")
            out = [part.decode(self._encoding, errors="replace") + "\n" for part in complete]
            if not chunk:
                if pending:
                    out.append(pending.decode(self._encoding, errors="replace"))
                out.append("")
            try:
                for line in out:
                    loop.call_soon_threadsafe(lines.put_nowait, line)
            except RuntimeError:  # loop already closed
                return
            if not chunk:
                return


async def interactive_loop(
    service: SearchService,
    k: int,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    """Read one query per line and print the top ``k`` songs, until EOF or Ctrl-C."""
    stdout = stdout or sys.stdout
    reader = _LineReader(stdin or sys.stdin)
    while True:
        stdout.write("\nQuery: ")
        stdout.flush()
        line = await reader.readline()
        if not line:
            break
        if not line.strip():
            continue

        try:
            matches = await service.search(line, k)
        except ProviderError as e:
            logger.error("Search failed: %s", e)
            continue

        for match in matches:
            stdout.write(f"{match.song}\n")
        stdout.flush()


async def run_query(cfg: Config, k: int) -> None:
    client = EmbeddingClient.from_config(cfg)
    try:
        store = await PgVectorStore.from_config(cfg)
        try:
            await interactive_loop(SearchService(client, store), k)
        finally:
            await store.close()
    finally:
        await client.aclose()


async def run_query_index(cfg: Config, batch_path: Path, k: int) -> None:
    index = EmbeddingBatch.load(batch_path, cfg.embedding.EMB_DIM).to_index()
    client = EmbeddingClient.from_config(cfg)
    try:
        await interactive_loop(SearchService(client, index), k)
    finally:
        await client.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.config is not None and not args.config.is_file():
        parser.error(f"Config file {args.config} does not exist.")

    try:
        cfg = load_config(args.config)
        _apply_overrides(cfg, args)

        if args.command == "ingest":
            asyncio.run(run_ingest(cfg, _input_paths(cfg, args)))
        elif args.command == "embed":
            output = args.output or Path(cfg.ingest.BATCH_PATH)
            asyncio.run(run_embed(cfg, _input_paths(cfg, args), output))
        elif args.command == "query":
            asyncio.run(run_query(cfg, args.k or cfg.query.TOP_K))
        elif args.command == "query-index":
            batch_path = args.batch or Path(cfg.ingest.BATCH_PATH)
            asyncio.run(run_query_index(cfg, batch_path, args.k or cfg.query.INDEX_TOP_K))
        else:  # pragma: no cover - argparse enforces the choices
            parser.print_help()
            return 2
    except (LoadError, StoreError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


__all__ = ["main", "build_parser", "interactive_loop", "run_ingest", "run_embed"]
