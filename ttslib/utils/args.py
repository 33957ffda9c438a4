from __future__ import annotations

import argparse


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Speak text with the first working TTS module")
    parser.add_argument(
        "text",
        nargs="?",
        help="Text to speak. If omitted, read from stdin.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--module",
        default=None,
        help="Module directory name under the modules root (default: $TTSLIB_MODULE, else any).",
    )
    source.add_argument(
        "--builtin",
        default=None,
        help="Use an in-tree adapter instead of scanning the modules root (espeak, pyttsx3).",
    )
    parser.add_argument(
        "--locale",
        default="en-US",
        help="Locale to speak in (default: en-US).",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Write audio to this file instead of playing it.",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env). Use empty to disable.",
    )
    parser.add_argument(
        "--save-log",
        action="store_true",
        help="Save the session log under $TTSLIB_LOG_DIR on exit.",
    )
    return parser.parse_args(argv)
