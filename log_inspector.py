"""CLI log inspector — browse a rotating log and its archives, or force a rotation."""

import argparse
import logging
import os
import sys

from rotating_log.config import load_config, load_yaml_config
from rotating_log.handler import RotatingSink
from rotating_log.inspector import list_log_files, read_file, search_files


def _human_size(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024 or unit == "MB":
            return f"{size} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024


def cmd_list(config, _args) -> int:
    files = list_log_files(config)
    if not files:
        print(f"No log files for {config.log_path}.")
        return 0
    for name in files:
        size = os.path.getsize(os.path.join(config.log_dir, name))
        marker = "*" if name == config.log_filename else " "
        print(f"{marker} {name}  ({_human_size(size)})")
    return 0


def cmd_read(config, args) -> int:
    try:
        sys.stdout.write(read_file(config.log_dir, args.filename))
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_search(config, args) -> int:
    results = search_files(config, args.text)
    for filename, line_num, line in results:
        print(f"{filename}:{line_num}: {line}")
    print(f"{len(results)} match(es) for '{args.text}'", file=sys.stderr)
    return 0 if results else 1


def cmd_rotate(config, _args) -> int:
    with RotatingSink.from_config(config, schedule_timer=False) as sink:
        outcome = sink.check(force=True)
    print(f"{config.log_path}: {outcome.value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect a rotating log and its archives")
    parser.add_argument("--config", default=os.environ.get("CONFIG_PATH"),
                        help="Optional YAML config file (env vars still win)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="Live file first, then archives newest first").set_defaults(
        func=cmd_list)

    read = sub.add_parser("read", help="Print one file")
    read.add_argument("filename")
    read.set_defaults(func=cmd_read)

    search = sub.add_parser("search", help="Find lines containing TEXT in every file")
    search.add_argument("text")
    search.set_defaults(func=cmd_search)

    sub.add_parser("rotate", help="Rotate now (size rule: only when over the limit)").set_defaults(
        func=cmd_rotate)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [rotating-log] %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)
    config = load_config(load_yaml_config(args.config))
    return args.func(config, args)


if __name__ == "__main__":
    sys.exit(main())
