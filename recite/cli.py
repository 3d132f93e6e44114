"""Command-line interface for the recitation trainer.

WHY: Most study sessions happen at a terminal: add a record, listen to
it a few times, recite, check. The CLI wires the store, the scheduler,
the speech backends and the checker together behind one command with a
subcommand per task.

HOW: argparse with subcommands. Each subcommand is a small _cmd_*
function taking the parsed args and an opened DocumentStore and
returning an exit code. Async work (playback, speaking, recognition)
runs via asyncio.run(). During `play`, a daemon thread reads keyboard
commands from stdin and hands them to the event loop with
loop.call_soon_threadsafe, since scheduler commands must run on the
loop thread.

RULES:
- Status output goes to stderr; data (lists, JSON, results) to stdout
- --data overrides RECITE_DATA_PATH for every subcommand
- Configuration and data errors print "Error: ..." and exit 1
- Ctrl-C during playback stops cleanly and exits 130
- logging.basicConfig is only called here and in `serve`
- Python 3.9.6 compatible: no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

import httpx

from recite.api.client import SonioxAPIError, TranscriptionError, TranscriptionTimeoutError
from recite.config import RECITE_DATA_PATH, RECITE_HOST, RECITE_PORT
from recite.core.checker import CheckResult, CheckState, check
from recite.core.models import Record
from recite.core.segmenter import segment
from recite.player.scheduler import PlaybackConfigurationError, PlaybackScheduler
from recite.speech.base import SpeechError
from recite.store.document import DocumentFormatError, DocumentStore

logger = logging.getLogger(__name__)

_KEY_HELP = "Keys: p=pause  r=resume  n=next record  b=previous record  q=stop"


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _error(msg: str) -> int:
    print("Error: {}".format(msg), file=sys.stderr, flush=True)
    return 1


def _resolve_record(store: DocumentStore, record_id: Optional[str]) -> Optional[Record]:
    if record_id:
        return store.get(record_id)
    return store.current()


def _print_result(record: Record, result: CheckResult, delimiters: str) -> None:
    segments = segment(record.answer_text, delimiters)
    for text, hit, score in zip(segments, result.per_segment_hit, result.scores):
        print("{} {:.2f}  {}".format("+" if hit else "-", score, text))
    print(result.summary())


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def _cmd_add(args: argparse.Namespace, store: DocumentStore) -> int:
    answer = args.answer
    if args.answer_file:
        answer = Path(args.answer_file).read_text(encoding="utf-8")
    if not answer:
        return _error("An answer is required (--answer or --answer-file)")
    record = store.put(Record.new(args.question, answer.strip()))
    print(record.id)
    return 0


def _cmd_list(args: argparse.Namespace, store: DocumentStore) -> int:
    current_id = store.current_record_id
    for record in store.list():
        marker = "*" if record.id == current_id else " "
        print("{} {}  {}".format(marker, record.id, record.question))
    return 0


def _cmd_delete(args: argparse.Namespace, store: DocumentStore) -> int:
    if not store.delete(args.record_id):
        return _error("Record '{}' not found".format(args.record_id))
    _status("Deleted {}".format(args.record_id))
    return 0


def _cmd_select(args: argparse.Namespace, store: DocumentStore) -> int:
    try:
        record = store.set_current(args.record_id)
    except KeyError:
        return _error("Record '{}' not found".format(args.record_id))
    _status("Current record: {}  {}".format(record.id, record.question))
    return 0


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _parse_assignment(text: str) -> tuple:
    if "=" not in text:
        raise argparse.ArgumentTypeError("expected key=value, got '{}'".format(text))
    key, value = text.split("=", 1)
    return key.strip(), value.strip()


def _cmd_settings(args: argparse.Namespace, store: DocumentStore) -> int:
    settings = store.load_settings()
    if args.set:
        changes = {}
        for key, value in args.set:
            try:
                changes[key] = json.loads(value)
            except ValueError:
                changes[key] = value
        settings = store.save_settings(settings.update(changes))
    print(json.dumps(settings.to_dict(), indent=2, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Checking
# ---------------------------------------------------------------------------


async def _recognize(audio: Path, record: Record, state: CheckState) -> int:
    from recite.speech.recognition import SonioxFileRecognizer, collect_recitation

    recognizer = SonioxFileRecognizer(audio, expected_text=record.answer_text, on_status=_status)
    return await collect_recitation(recognizer, state)


def _cmd_check(args: argparse.Namespace, store: DocumentStore) -> int:
    record = _resolve_record(store, args.record)
    if record is None:
        return _error("No record to check against")
    settings = store.load_settings()

    if args.audio:
        state = CheckState(record_id=record.id)
        try:
            count = asyncio.run(_recognize(Path(args.audio), record, state))
        except (
            SonioxAPIError,
            TranscriptionError,
            TranscriptionTimeoutError,
            httpx.HTTPError,
            OSError,
            ValueError,
        ) as exc:
            return _error(str(exc))
        _status("Recognized {} sentence(s)".format(count))
        if state.recited_text:
            _status(state.recited_text)
        result = state.evaluate(record, settings)
    else:
        text = args.text
        if text is None or text == "-":
            text = sys.stdin.read()
        result = check(record, text, settings.threshold, settings.sentence_delimiters)

    _print_result(record, result, settings.sentence_delimiters)
    return 0


# ---------------------------------------------------------------------------
# Speech
# ---------------------------------------------------------------------------


def _apply_key(scheduler: PlaybackScheduler, command: str) -> None:
    try:
        if command in ("p", "pause"):
            scheduler.pause()
        elif command in ("r", "resume"):
            scheduler.resume()
        elif command in ("n", "next"):
            if scheduler.goto_next() is not None:
                scheduler.start()
        elif command in ("b", "back", "previous"):
            if scheduler.goto_previous() is not None:
                scheduler.start()
        elif command in ("q", "quit", "s", "stop"):
            scheduler.stop()
        elif command:
            _status(_KEY_HELP)
    except PlaybackConfigurationError as exc:
        _status("Cannot continue: {}".format(exc))


def _read_keys(loop: asyncio.AbstractEventLoop, scheduler: PlaybackScheduler) -> None:
    for line in sys.stdin:
        command = line.strip().lower()
        loop.call_soon_threadsafe(_apply_key, scheduler, command)
        if command in ("q", "quit", "s", "stop"):
            break


async def _play(args: argparse.Namespace, store: DocumentStore) -> None:
    from recite.speech.edge import EdgeSpeechSynthesizer

    synthesizer = EdgeSpeechSynthesizer(voice=args.voice) if args.voice else EdgeSpeechSynthesizer()
    scheduler = PlaybackScheduler(store, synthesizer, on_status=_status)
    scheduler.start(args.record)

    if sys.stdin.isatty():
        _status(_KEY_HELP)
        reader = threading.Thread(
            target=_read_keys,
            args=(asyncio.get_running_loop(), scheduler),
            daemon=True,
        )
        reader.start()

    await scheduler.wait()


def _cmd_play(args: argparse.Namespace, store: DocumentStore) -> int:
    try:
        asyncio.run(_play(args, store))
    except PlaybackConfigurationError as exc:
        return _error(str(exc))
    except KeyError as exc:
        return _error("Record {} not found".format(exc))
    except KeyboardInterrupt:
        _status("\nStopped.")
        return 130
    return 0


def _cmd_speak(args: argparse.Namespace, store: DocumentStore) -> int:
    from recite.speech.edge import EdgeSpeechSynthesizer

    settings = store.load_settings()
    synthesizer = EdgeSpeechSynthesizer(voice=args.voice) if args.voice else EdgeSpeechSynthesizer()
    try:
        asyncio.run(synthesizer.speak(
            args.text,
            rate=settings.rate,
            volume=settings.volume,
            voice=settings.tts_voice or None,
        ))
    except SpeechError as exc:
        return _error(str(exc))
    return 0


# ---------------------------------------------------------------------------
# Import / export / serve
# ---------------------------------------------------------------------------


def _cmd_export(args: argparse.Namespace, store: DocumentStore) -> int:
    content = json.dumps(store.export_document(), indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        _status("Exported {} record(s) to {}".format(len(store.list()), args.output))
    else:
        print(content)
    return 0


def _cmd_import(args: argparse.Namespace, store: DocumentStore) -> int:
    try:
        count = store.import_document(Path(args.file).read_bytes())
    except DocumentFormatError as exc:
        return _error(str(exc))
    except OSError as exc:
        return _error("Cannot read {}: {}".format(args.file, exc))
    _status("Imported {} record(s)".format(count))
    return 0


def _cmd_serve(args: argparse.Namespace, store: DocumentStore) -> int:
    import uvicorn

    from recite.server import app as app_module

    app_module.scheduler = PlaybackScheduler(store, app_module.scheduler.synthesizer)
    _status("Serving data from {}".format(store.path))
    uvicorn.run(app_module.app, host=args.host, port=args.port, log_level="info")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable; tests can parse arguments without touching the store.
    """
    parser = argparse.ArgumentParser(
        prog="recite",
        description="Memorize answers by listening to them in small repeated groups, "
                    "then check your recitation.",
    )
    parser.add_argument(
        "--data",
        default=None,
        help="Path to the data document (default: {}).".format(RECITE_DATA_PATH),
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="Add a record.")
    p.add_argument("question", help="Question text.")
    p.add_argument("--answer", default=None, help="Answer text.")
    p.add_argument("--answer-file", default=None, help="Read the answer from a UTF-8 text file.")
    p.set_defaults(func=_cmd_add)

    p = sub.add_parser("list", help="List records (* marks the current one).")
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("delete", help="Delete a record.")
    p.add_argument("record_id", help="Record identifier.")
    p.set_defaults(func=_cmd_delete)

    p = sub.add_parser("select", help="Make a record current.")
    p.add_argument("record_id", help="Record identifier.")
    p.set_defaults(func=_cmd_select)

    p = sub.add_parser("settings", help="Show or change settings.")
    p.add_argument(
        "--set",
        action="append",
        type=_parse_assignment,
        default=None,
        metavar="KEY=VALUE",
        help="Change a setting, e.g. --set groupSize=4. Can be repeated.",
    )
    p.set_defaults(func=_cmd_settings)

    p = sub.add_parser("check", help="Check a recitation against a record.")
    p.add_argument("--record", default=None, help="Record identifier (default: current).")
    source = p.add_mutually_exclusive_group()
    source.add_argument("--text", default=None, help="Recited text ('-' or omitted reads stdin).")
    source.add_argument("--audio", default=None, help="Recorded recitation to transcribe with Soniox.")
    p.set_defaults(func=_cmd_check)

    p = sub.add_parser("play", help="Play a record's study plan.")
    p.add_argument("--record", default=None, help="Record identifier (default: current).")
    p.add_argument("--voice", default=None, help="edge-tts voice name.")
    p.set_defaults(func=_cmd_play)

    p = sub.add_parser("speak", help="Speak a piece of text.")
    p.add_argument("text", help="Text to speak.")
    p.add_argument("--voice", default=None, help="edge-tts voice name.")
    p.set_defaults(func=_cmd_speak)

    p = sub.add_parser("export", help="Export everything as one JSON document.")
    p.add_argument("--output", default=None, help="File to write (default: stdout).")
    p.set_defaults(func=_cmd_export)

    p = sub.add_parser("import", help="Replace everything with a JSON document.")
    p.add_argument("file", help="Document to import.")
    p.set_defaults(func=_cmd_import)

    p = sub.add_parser("serve", help="Run the HTTP API.")
    p.add_argument("--host", default=RECITE_HOST, help="Bind address (default: %(default)s).")
    p.add_argument("--port", type=int, default=RECITE_PORT, help="Port (default: %(default)s).")
    p.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Returns the process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    store = DocumentStore(Path(args.data) if args.data else RECITE_DATA_PATH)
    return args.func(args, store)


if __name__ == "__main__":
    sys.exit(main())
