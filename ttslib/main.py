from __future__ import annotations

import sys
from pathlib import Path

EXIT_OK = 0
EXIT_LOAD_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_SYNTHESIS_FAILED = 3


def main(argv: list[str] | None = None) -> int:
    from ttslib.config import AppConfig
    from ttslib.di_container import build_container
    from ttslib.utils.args import parse_args
    from ttslib.utils.env import load_dotenv

    args = parse_args(sys.argv[1:] if argv is None else argv)
    text = args.text
    if text is None:
        text = sys.stdin.read().strip()

    load_dotenv(args.env_file)

    try:
        config = AppConfig.from_env()
    except ValueError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    container = build_container(config, locale=args.locale)
    container.logger.on_emit = lambda line: print(line, file=sys.stderr)
    loader = container.loader

    try:
        module = args.module or config.default_module
        if args.builtin:
            loaded = loader.load_builtin(args.builtin)
        elif module:
            loaded = loader.load(module)
        else:
            loaded = loader.load_any()

        speaker = loader.get_speaker()
        if not loaded or speaker is None:
            print("Failed to load module", file=sys.stderr)
            return EXIT_LOAD_FAILED

        if args.locale and not speaker.change_language(args.locale):
            container.logger.warning(f"Locale {args.locale} unavailable; using the module default.")

        if args.out:
            out = Path(args.out)
            ok = speaker.synthesize_to_file(text, str(out.parent), out.name)
        else:
            ok = speaker.synthesize_to_device(text)

        return EXIT_OK if ok else EXIT_SYNTHESIS_FAILED
    finally:
        loader.unload()
        if args.save_log:
            container.logger.save()


if __name__ == "__main__":
    raise SystemExit(main())
