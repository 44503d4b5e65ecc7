"""
makellamafile command-line front-end.

Usage:
    makellamafile path/to/model.gguf
    makellamafile -n mistral -d "Mistral 7B" -t path/to/model.gguf
    makellamafile --setup [--fetch-stub]

Exit codes: 0 success, 1 user or resource error, 2 internal failure.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any

from makellamafile import __version__
from makellamafile.config import (
    ALIGNMENT,
    OUTPUT_DIR,
    EffectiveConfig,
    default_config_path,
    default_settings,
    load_config_file,
    resolve,
    write_default_config,
)
from makellamafile.errors import (
    EXIT_INTERNAL_ERROR,
    EXIT_OK,
    EXIT_USER_ERROR,
    MakeLlamafileError,
    UserInputError,
)
from makellamafile.packaging.packager import convert
from makellamafile.packaging.registry import record_artifact
from makellamafile.smoke import DEFAULT_PROMPT, run_smoke_test
from makellamafile.stub import fetch_stub, stub_path_for
from makellamafile.utils.fs import ensure_directory

logger = logging.getLogger(__name__)

PROG = "makellamafile"
CONFIG_ENV_VAR = "MAKELLAMAFILE_CONFIG"

USAGE = f"""\
Usage: {PROG} [OPTIONS] MODEL_PATH
       {PROG} --setup [--fetch-stub]

Convert an LLM weights file (e.g. .gguf) into a self-contained llamafile
executable at OUTPUT_DIR/<name>/<name>.llamafile.

Options:
  -o, --output-dir DIR    Base directory for packaged llamafiles
  -n, --name NAME         Artifact name (default: model filename without extension)
  -d, --description DESC  Description stored in meta.json and the registry
  -t, --test              Run the packaged llamafile once after conversion
  -p, --prompt PROMPT     Prompt for --test
      --stub PATH         Executable stub to use (default: BIN_DIR/llamafile)
      --alignment N       Byte alignment of the embedded model (default: 0)
      --config PATH       Config file (default: ~/.config/makellamafile/config)
      --setup             Create OUTPUT_DIR, DOWNLOAD_DIR, BIN_DIR and a default config
      --fetch-stub        With --setup, download the llamafile stub into BIN_DIR
  -v, --verbose           Log progress to stderr
      --version           Print version and exit
  -h, --help              Show this help and exit

Config file keys: OUTPUT_DIR, DOWNLOAD_DIR, BIN_DIR, ALIGNMENT, LLAMAFILE_ARGS
"""

SETUP_HINT = f"Run '{PROG} --setup' to create the default directories and config, or '{PROG} --help' for usage."


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad arguments as UserInputError instead of exiting."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise UserInputError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog=PROG, add_help=False, usage=argparse.SUPPRESS)
    parser.add_argument("model", nargs="?", default=None)
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--setup", action="store_true")
    parser.add_argument("--fetch-stub", dest="fetch_stub", action="store_true")
    parser.add_argument("-o", "--output-dir", dest="output_dir", default=None)
    parser.add_argument("-n", "--name", default=None)
    parser.add_argument("-d", "--description", default=None)
    parser.add_argument("-t", "--test", action="store_true")
    parser.add_argument("-p", "--prompt", default=None)
    parser.add_argument("--stub", default=None)
    parser.add_argument("--alignment", type=int, default=None)
    parser.add_argument("--config", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _config_path(args: argparse.Namespace, home: Path) -> Path:
    if args.config:
        return Path(args.config).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path and env_path.strip():
        return Path(env_path).expanduser()
    return default_config_path(home)


def _cli_flags(args: argparse.Namespace) -> dict[str, Any]:
    return {
        OUTPUT_DIR: args.output_dir,
        ALIGNMENT: args.alignment,
    }


def _effective_config(args: argparse.Namespace) -> tuple[EffectiveConfig, Path]:
    home = Path.home()
    config_path = _config_path(args, home)
    cfg = resolve(default_settings(home), load_config_file(config_path), _cli_flags(args))
    logger.info(f"Effective config: {cfg}")
    return cfg, config_path


def run_setup(args: argparse.Namespace) -> int:
    cfg, config_path = _effective_config(args)
    if args.fetch_stub and cfg.bin_dir is None:
        raise UserInputError("--fetch-stub needs BIN_DIR; set it in the config file")

    for directory in (cfg.output_dir, cfg.download_dir, cfg.bin_dir):
        if directory is not None:
            ensure_directory(directory)

    written = write_default_config(config_path, cfg)

    print(f"Output directory:   {cfg.output_dir}")
    print(f"Download directory: {cfg.download_dir}")
    print(f"Stub directory:     {cfg.bin_dir}")
    if written:
        print(f"Wrote config file:  {config_path}")
    else:
        print(f"Config file exists: {config_path}")

    if args.fetch_stub:
        stub = fetch_stub(cfg.bin_dir)
        print(f"Downloaded stub:    {stub}")
    elif args.stub or cfg.bin_dir is not None:
        stub = stub_path_for(cfg.bin_dir, args.stub)
        if not stub.is_file():
            print(f"No stub at {stub}; run '{PROG} --setup --fetch-stub' or pass --stub.")

    print("Setup complete.")
    return EXIT_OK


def run_convert(args: argparse.Namespace) -> int:
    cfg, _ = _effective_config(args)
    result = convert(
        Path(args.model),
        cfg.output_dir,
        name=args.name,
        stub_path=stub_path_for(cfg.bin_dir, args.stub),
        alignment=cfg.alignment,
        description=args.description,
        llamafile_args=cfg.llamafile_args,
    )

    try:
        record_artifact(cfg.output_dir, result, args.description)
    except (OSError, ValueError, MakeLlamafileError) as e:
        logger.warning(f"Could not update registry in {cfg.output_dir}: {e}")

    print(result.path)

    if args.test:
        smoke = run_smoke_test(result.path, args.prompt or DEFAULT_PROMPT, cfg.llamafile_args)
        print(smoke.output, end="" if smoke.output.endswith("\n") else "\n")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UserInputError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(SETUP_HINT, file=sys.stderr)
        return e.exit_code

    _configure_logging(args.verbose)

    if args.help:
        print(USAGE, end="")
        return EXIT_OK
    if args.version:
        print(f"{PROG} {__version__}")
        return EXIT_OK

    try:
        if args.setup:
            return run_setup(args)
        if not args.model:
            print("No input file specified", file=sys.stderr)
            print(SETUP_HINT, file=sys.stderr)
            return EXIT_USER_ERROR
        return run_convert(args)
    except MakeLlamafileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except Exception as e:
        logger.info("Unexpected failure", exc_info=True)
        print(f"Internal error: {e}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
