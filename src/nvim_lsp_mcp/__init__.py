"""Neovim LSP MCP - Read LSP diagnostics from a running Neovim session."""

__version__ = "0.1.0"

from nvim_lsp_mcp.api import DiagnosticsPipeline, get_diagnostics
from nvim_lsp_mcp.diagnostics import DiagnosticItem, FileDiagnostics, Severity
from nvim_lsp_mcp.formatter import DiagnosticsFormatter

__all__ = [
    "DiagnosticItem",
    "DiagnosticsFormatter",
    "DiagnosticsPipeline",
    "FileDiagnostics",
    "Severity",
    "get_diagnostics",
]
