import argparse
import asyncio
import logging
import sys
from pathlib import Path
from pprint import pformat
from types import SimpleNamespace

from modreq.modreq_runtime import create_context


def _format_value(value) -> str:
    if isinstance(value, SimpleNamespace):
        return pformat(vars(value))
    return pformat(value)


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


async def run_script_file(file_path: str, config=None) -> int:
    """Run a script file as the main module; returns the process exit status."""
    p = Path(file_path)
    if not p.is_file():
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return 1
    if config is None:
        config = {"base-dir": str(p.parent.resolve())}
    ctx = create_context(config)
    result = await ctx.run_main(p)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    if result.value is not None:
        print(_format_value(result.value))
    return 0


async def repl(config=None) -> int:
    print("modreq REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    ctx = create_context(config)

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = await ctx.handle_script(line, "<stdin>")
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue
            if result.value is not None:
                print(_format_value(result.value))

        except EOFError:
            print("\nExiting.")
            break
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modreq-run", description="Run a script with require() support")
    parser.add_argument("script", nargs="?", help="Script to run as the main module; omit for a REPL")
    parser.add_argument("--config", type=Path, help="JSON, YAML or TOML runtime config")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


async def main(argv=None) -> int:
    """Run a script file when provided, otherwise start the interactive REPL."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    config = args.config
    if config is not None and not config.is_file():
        print(f"Error: config not found: {config}", file=sys.stderr)
        return 1
    if args.script:
        return await run_script_file(args.script, config)
    return await repl(config)


def run():
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    run()
