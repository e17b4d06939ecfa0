"""Configuration module for the Neovim LSP MCP server."""

from nvim_lsp_mcp.config.constants import CONSTANTS, Constants
from nvim_lsp_mcp.config.settings import Settings

__all__ = ["CONSTANTS", "Constants", "Settings"]
