"""Path helpers for workspace-relative file handling."""

import os


def is_within_workspace(path: str, workspace: str) -> bool:
    """Check whether a path lies inside the workspace.

    This is a plain prefix check on path components; neither side is
    resolved, so symlinks and ``..`` segments are compared as written.

    Args:
        path: Absolute file path.
        workspace: Absolute workspace root.

    Returns:
        True if ``path`` is the workspace itself or below it.
    """
    if not path or not workspace:
        return False
    if path == workspace:
        return True
    root = workspace if workspace.endswith(os.sep) else workspace + os.sep
    return path.startswith(root)


def split_by_workspace(paths: list[str], workspace: str) -> tuple[list[str], list[str]]:
    """Partition paths into those inside and outside the workspace.

    Args:
        paths: File paths in caller order.
        workspace: Absolute workspace root.

    Returns:
        Tuple of (inside, outside), each preserving the input order.
    """
    inside: list[str] = []
    outside: list[str] = []
    for path in paths:
        (inside if is_within_workspace(path, workspace) else outside).append(path)
    return inside, outside


def workspace_paths(workspace: str, relative_paths: list[str]) -> list[str]:
    """Join relative paths (as printed by git) onto the workspace root.

    Blank entries are ignored and only regular, readable files are kept.
    """
    result: list[str] = []
    for rel in relative_paths:
        rel = rel.strip()
        if not rel:
            continue
        full = os.path.join(workspace, rel.replace("/", os.sep))
        if os.path.isfile(full) and os.access(full, os.R_OK):
            result.append(full)
    return result
