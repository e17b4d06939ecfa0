"""Command-line entry point: print diagnostics for a workspace once and exit."""

import argparse
import os
import sys
from dataclasses import replace

from nvim_lsp_mcp.api import DiagnosticsPipeline
from nvim_lsp_mcp.config.constants import CONSTANTS
from nvim_lsp_mcp.config.settings import Settings
from nvim_lsp_mcp.errors import NvimLspMcpError
from nvim_lsp_mcp.logging_config import setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Read LSP diagnostics for a workspace from a running Neovim session."
    )
    parser.add_argument("workspace", help="Workspace path; must match Neovim's cwd")
    parser.add_argument(
        "--file",
        "-f",
        dest="files",
        action="append",
        default=[],
        metavar="FILE",
        help="File to refresh and report (repeatable; default: files changed against HEAD)",
    )
    parser.add_argument(
        "--format",
        choices=list(CONSTANTS.OUTPUT_MODES),
        default=None,
        help="Output format (default: $NVIM_LSP_MCP_OUTPUT or text)",
    )
    parser.add_argument(
        "--address",
        "-a",
        default=None,
        help="Neovim listen address (default: $NVIM_LISTEN_ADDRESS, then discovery)",
    )
    parser.add_argument(
        "--max-files",
        type=int,
        default=None,
        help=f"Skip reloading when more files than this are targeted (default: {CONSTANTS.MAX_FILES_TO_RELOAD})",
    )
    parser.add_argument(
        "--settle",
        choices=list(CONSTANTS.SETTLE_MODES),
        default=None,
        help="How to wait for LSP servers after reloading (default: fixed)",
    )
    parser.add_argument(
        "--settle-seconds",
        type=float,
        default=None,
        help=f"Settle wait or polling bound in seconds (default: {CONSTANTS.SETTLE_SECONDS:g})",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write the log here instead of mcp.log",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Overlay CLI options on environment-derived settings."""
    overrides = {
        "address": args.address,
        "output_mode": args.format,
        "max_files": args.max_files,
        "settle_mode": args.settle,
        "settle_seconds": args.settle_seconds,
        "log_file": args.log_file,
    }
    return replace(Settings(), **{k: v for k, v in overrides.items() if v is not None})


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        settings = build_settings(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_file)

    workspace = os.path.abspath(args.workspace)
    if not os.path.isdir(workspace):
        print(f"Error: '{args.workspace}' is not a valid directory", file=sys.stderr)
        return 1
    files = [os.path.abspath(f) for f in args.files]

    pipeline = DiagnosticsPipeline(settings)
    try:
        output = pipeline.run(workspace, files)
    except NvimLspMcpError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pipeline.cancel_event.set()
        print("Interrupted", file=sys.stderr)
        return 130

    if output:
        print(output)
    else:
        print("No diagnostics found", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
