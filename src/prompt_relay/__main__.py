"""CLI entrypoint for PromptRelay."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path

from .app import PromptRelayApp
from .config import ensure_config_dir


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptrelay",
        description="PromptRelay - compose prompts and relay them to the Claude CLI",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a config.toml (default: ~/.config/promptrelay/config.toml)",
    )
    parser.add_argument(
        "--diagnostics",
        type=Path,
        default=None,
        help="JSON file with workspace diagnostics offered by @problems",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Ensure configuration exists, handle CLI flags, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("prompt-relay")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"promptrelay {version}")
        return

    ensure_config_dir()
    app = PromptRelayApp(config_path=args.config, diagnostics_path=args.diagnostics)
    app.run()


if __name__ == "__main__":
    main()
