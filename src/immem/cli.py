from __future__ import annotations

import argparse
import json
import os
import sys
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .analyzer import CachedAnalyzer
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .nlp import NLPBackend, NLPBackendUnavailableError
from .ruby import InvalidCaptionError, parse_caption
from .selector import TargetSelection, select_target
from .srt import format_timestamp, parse_srt, subtitle_markup
from .vocab import VocabLibrary, VocabularyError, load_learned_words, load_vocabulary
from .web import WebConfig, create_app, selection_payload
from .words import serialize_words

VOCAB_PATH_ENV = "IMMEM_VOCAB_PATH"
LEARNED_PATH_ENV = "IMMEM_LEARNED_PATH"
COMMANDS = ("analyze", "parse", "select", "scan", "web")


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - installed without a source tree
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("immem")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"immem {__version__}",
    )


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    _add_version_flag(parser)
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print analysis and selection decisions to stderr.",
    )
    parser.add_argument(
        "--dicdir",
        help="MeCab IPADIC dictionary directory (default: the bundled 'ipadic' package).",
    )


def _add_vocab_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--vocab",
        default=os.environ.get(VOCAB_PATH_ENV),
        help=f"Vocabulary JSON file (default: ${VOCAB_PATH_ENV}).",
    )
    parser.add_argument(
        "--learned",
        default=os.environ.get(LEARNED_PATH_ENV),
        help=f"JSON list of learned lemmas or saved cards (default: ${LEARNED_PATH_ENV}).",
    )
    parser.add_argument(
        "-l",
        "--level",
        dest="levels",
        action="append",
        help="Enable a vocabulary level (repeatable; default: every level).",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="immem",
        description="Pick the first unlearned vocabulary word from Japanese captions.",
    )
    _add_version_flag(ap)
    ap.add_argument("command", choices=COMMANDS, help="Subcommand to run.")
    return ap


def build_analyze_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="immem analyze",
        description="Tokenize text and show the reconstructed words.",
    )
    _add_common_flags(ap)
    ap.add_argument("text", nargs="+", help="Japanese text to analyze.")
    ap.add_argument("--json", action="store_true", help="Emit words as JSON.")
    return ap


def build_parse_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="immem parse",
        description="Extract clean text and furigana spans from caption markup.",
    )
    _add_common_flags(ap)
    ap.add_argument("html", help="Caption markup, e.g. '<ruby>漢字<rt>かんじ</rt></ruby>です'.")
    return ap


def build_select_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="immem select",
        description="Select the target word of a single caption.",
    )
    _add_common_flags(ap)
    _add_vocab_flags(ap)
    ap.add_argument("html", help="Caption markup or plain text.")
    ap.add_argument("--json", action="store_true", help="Emit the selection as JSON.")
    return ap


def build_scan_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="immem scan",
        description="Select a target word for every caption of an .srt file.",
    )
    _add_common_flags(ap)
    _add_vocab_flags(ap)
    ap.add_argument("srt", help="Path to the subtitle file.")
    ap.add_argument(
        "--all",
        action="store_true",
        help="Also list captions without a target word.",
    )
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="immem web",
        description="Serve analysis and target selection over HTTP.",
    )
    _add_common_flags(ap)
    _add_vocab_flags(ap)
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    return ap


def _create_backend(args: argparse.Namespace) -> NLPBackend:
    try:
        return NLPBackend(getattr(args, "dicdir", None))
    except NLPBackendUnavailableError as exc:
        raise SystemExit(str(exc)) from exc


def _optional_path(value: str | None) -> Path | None:
    if not value:
        return None
    return Path(value).expanduser().resolve()


def _load_vocabulary_from_args(args: argparse.Namespace) -> VocabLibrary:
    vocab_path = _optional_path(args.vocab)
    if vocab_path is None:
        raise SystemExit(f"No vocabulary file given; pass --vocab or set ${VOCAB_PATH_ENV}.")
    if not vocab_path.is_file():
        raise SystemExit(f"Vocabulary file not found: {vocab_path}")
    try:
        return load_vocabulary(vocab_path)
    except VocabularyError as exc:
        raise SystemExit(str(exc)) from exc


def _load_learned_from_args(args: argparse.Namespace) -> set[str]:
    try:
        return load_learned_words(_optional_path(args.learned))
    except VocabularyError as exc:
        raise SystemExit(str(exc)) from exc


def _describe_selection(selection: TargetSelection | None) -> str:
    if selection is None:
        return "No target word."
    word = selection.word
    line = f"{word.surface} (lemma: {word.lemma}, {word.part_of_speech})"
    if selection.highlight_span is not None:
        start, end = selection.highlight_span
        line += f" [{start}:{end}]"
    if selection.furigana is not None:
        line += f" furigana: {selection.furigana.furigana}"
    return line


def _run_analyze(args: argparse.Namespace) -> int:
    text = " ".join(args.text).strip()
    if not text:
        raise SystemExit("No text provided for analysis.")
    backend = _create_backend(args)
    words = backend.analyze(text)
    if args.json:
        print(json.dumps(serialize_words(words), ensure_ascii=False, indent=2))
        return 0
    table = Table(show_header=True, header_style="bold")
    for column in ("word", "lemma", "pos", "reading", "grammar"):
        table.add_column(column)
    for word in words:
        table.add_row(word.surface, word.lemma, word.part_of_speech, word.reading, word.grammar or "")
    Console(highlight=False).print(table)
    return 0


def _run_parse(args: argparse.Namespace) -> int:
    parsed = parse_caption(args.html)
    print(parsed.clean_text)
    for mapping in parsed.furigana_map:
        print(f"{mapping.start}\t{mapping.end}\t{mapping.kanji}\t{mapping.furigana}")
    return 0


def _run_select(args: argparse.Namespace) -> int:
    vocabulary = _load_vocabulary_from_args(args)
    learned = _load_learned_from_args(args)
    backend = _create_backend(args)
    try:
        selection = select_target(
            args.html,
            analyzer=backend,
            active_words=vocabulary.active_wordlist(args.levels, learned),
            learned_words=learned,
            lookup=vocabulary.lookup,
        )
    except InvalidCaptionError as exc:
        raise SystemExit(str(exc)) from exc
    if args.json:
        print(json.dumps(selection_payload(selection), ensure_ascii=False, indent=2))
    else:
        print(_describe_selection(selection))
    return 0


def _run_scan(args: argparse.Namespace) -> int:
    srt_path = Path(args.srt).expanduser()
    if not srt_path.is_file():
        raise SystemExit(f"Subtitle file not found: {srt_path}")
    entries = parse_srt(srt_path.read_text(encoding="utf-8-sig"))
    vocabulary = _load_vocabulary_from_args(args)
    learned = _load_learned_from_args(args)
    active = vocabulary.active_wordlist(args.levels, learned)
    analyzer = CachedAnalyzer(_create_backend(args))

    console = Console(stderr=True)
    progress: Progress | None = None
    task_id = None
    if console.is_terminal and entries:
        progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(bar_width=None),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        progress.start()
        task_id = progress.add_task("Scanning captions", total=len(entries))

    found = 0
    try:
        for entry in entries:
            selection = select_target(
                subtitle_markup(entry),
                analyzer=analyzer,
                active_words=active,
                learned_words=learned,
                lookup=vocabulary.lookup,
            )
            if progress is not None and task_id is not None:
                progress.advance(task_id)
            if selection is None and not args.all:
                continue
            if selection is not None:
                found += 1
            caption = entry.text.replace("\n", " ")
            print(f"{format_timestamp(entry.start_time)}\t{caption}\t{_describe_selection(selection)}")
    finally:
        if progress is not None:
            progress.stop()
    print(f"{found} of {len(entries)} captions have a target word.", file=sys.stderr)
    return 0


def _run_web(args: argparse.Namespace) -> None:
    vocab_path = _optional_path(args.vocab)
    config = WebConfig(
        vocab_path=vocab_path,
        learned_path=_optional_path(args.learned),
        levels=tuple(args.levels) if args.levels else None,
    )
    try:
        app = create_app(config, backend=_create_backend(args))
    except VocabularyError as exc:
        raise SystemExit(str(exc)) from exc
    print(f"Serving immem on http://{args.host}:{args.port}/")
    if vocab_path is None:
        print("No vocabulary file configured; /api/select will never find a target.")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
        log_config=build_uvicorn_log_config(debug=args.debug),
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parsers = {
        "analyze": (build_analyze_parser, _run_analyze),
        "parse": (build_parse_parser, _run_parse),
        "select": (build_select_parser, _run_select),
        "scan": (build_scan_parser, _run_scan),
    }
    if argv and argv[0] in parsers:
        build, run = parsers[argv[0]]
        args = build().parse_args(argv[1:])
        set_debug_logging(bool(args.debug))
        return run(args)
    if argv and argv[0] == "web":
        web_args = build_web_parser().parse_args(argv[1:])
        set_debug_logging(bool(web_args.debug))
        _run_web(web_args)
        return 0

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv[:1])
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
