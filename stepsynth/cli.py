from __future__ import annotations

import argparse
import logging
import os
from datetime import timedelta

from rich.console import Console

from .audio import SAMPLE_RATE
from .config import Processing, SessionSettings
from .logging_utils import DEBUG_ENV, configure_logging, log_exception
from .notes import note_freq
from .session import Session
from .waves import PRIMITIVES, Noise, Saw, Sine, Square

_LOGGER = logging.getLogger("stepsynth.cli")
_CONSOLE = Console()


def build_demo(session: Session, duration: float) -> None:
    """Lead, pad, bass and percussion over one shared window."""
    lead_processing = Processing(
        attack=timedelta(milliseconds=100),
        reverb=(timedelta(milliseconds=200), 0.8),
    )

    l_1, l_2, l_3 = note_freq(0), note_freq(-2), note_freq(-4)
    session.add_channel(Saw(), 0.1, lead_processing, [l_1, l_2, l_3, l_3] * 4, duration)

    p_1, p_2, p_3 = note_freq(-12), note_freq(-14), note_freq(-16)
    session.add_channel(Square(), 0.1, None, [p_1, p_1, p_2, p_3], duration)

    b_1, b_2 = note_freq(-24), note_freq(-26)
    session.add_channel(Sine(), 0.1, None, [b_1, b_2], duration)

    session.add_channel(Noise(), 0.2, None, [b_1, 0.0, l_1, 0.0] * 4, duration)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stepsynth")
    sub = parser.add_subparsers(dest="command", required=True)

    demo = sub.add_parser("demo", help="Render the four-channel demo phrase.")
    demo.add_argument("--duration", type=float, default=1.5, help="Phrase length in seconds.")
    demo.add_argument("--repeat", type=int, default=1)
    demo.add_argument("--output", type=str, default=None, help="Write the mix to this wav file.")
    demo.add_argument("--play", action="store_true", help="Play through the audio device.")

    tone = sub.add_parser("tone", help="Render a single test tone.")
    tone.add_argument("--note", type=float, default=0.0, help="Semitones from A4.")
    tone.add_argument("--wave", choices=sorted(PRIMITIVES), default="sine")
    tone.add_argument("--volume", type=float, default=0.7)
    tone.add_argument("--duration", type=float, default=1.0)
    tone.add_argument("--output", type=str, default=None)
    tone.add_argument("--play", action="store_true")
    return parser


def _finish(session: Session, args: argparse.Namespace, repeat: int) -> None:
    if args.play:
        session.run(repeat)
    if args.output:
        path = session.save(args.output, repeat_count=repeat)
        _CONSOLE.print(f"Wrote {path} (sr={SAMPLE_RATE})")


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        settings = SessionSettings.from_env()
        backend = settings.backend if args.play else "memory"

        if args.command == "demo":
            with Session.create(settings, backend=backend) as session:
                with _CONSOLE.status("Rendering demo phrase"):
                    build_demo(session, args.duration)
                _finish(session, args, args.repeat)
            return 0

        if args.command == "tone":
            with Session.create(settings, backend=backend) as session:
                wave = PRIMITIVES[args.wave]()
                session.add_channel(wave, args.volume, None, note_freq(args.note), args.duration)
                _finish(session, args, 1)
            return 0

        parser.print_help()
        return 1
    except Exception as exc:
        debug = bool(os.environ.get(DEBUG_ENV))
        _LOGGER.warning("stepsynth CLI failed: %s", exc, exc_info=debug)
        log_exception("stepsynth CLI", exc)
        _CONSOLE.print(f"[bold red]stepsynth failed:[/] {type(exc).__name__}: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
