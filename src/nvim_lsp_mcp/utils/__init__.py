"""Utility modules for nvim-lsp-mcp."""

from nvim_lsp_mcp.utils.paths import is_within_workspace, split_by_workspace, workspace_paths

__all__ = ["is_within_workspace", "split_by_workspace", "workspace_paths"]
