"""Machine-readable description of the githup commands."""

from __future__ import annotations

from ._version import __version__


def _common_properties() -> dict:
    return {
        "repositories": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 1,
            "description": "Repository paths, resolved against the base directory",
        },
        "base_dir": {
            "type": "string",
            "description": "Directory relative repository paths are resolved against (env: GITHUP_BASE_DIR)",
        },
        "workers": {
            "type": "integer",
            "minimum": 1,
            "description": "Maximum number of repositories processed at once (default: one per repository)",
        },
        "fail_on_error": {
            "type": "boolean",
            "description": "Exit with status 1 when any repository fails",
            "default": False,
        },
    }


def get_tool_schema() -> dict:
    """Generate the tool schema printed by ``githup --schema``."""
    checkout_properties = {
        "branch": {
            "type": "string",
            "description": "Branch to check out. Falls back to master when it exists neither locally nor on origin",
        },
        **_common_properties(),
    }
    return {
        "name": "githup",
        "version": __version__,
        "description": "Pull, checkout or upgrade branches across several Git repositories and print one aligned line per repository.",
        "usage": "githup <command> [branch] --repositories <path> [<path> ...]",
        "tools": [
            {
                "name": "pull",
                "description": "Pull every repository from its tracking branch. Reports inserted and deleted lines, the number of origin/master commits missing from HEAD, and the tracking branch.",
                "inputSchema": {
                    "type": "object",
                    "properties": _common_properties(),
                    "required": ["repositories"],
                },
                "columns": ["Repository", "Insertions", "Deletions", "Master gap", "Branch"],
                "examples": [
                    {
                        "description": "Pull two sibling repositories",
                        "command": "githup pull -r api web",
                    },
                ],
            },
            {
                "name": "checkout",
                "description": "Fetch, then check out the branch in every repository. Repositories without the branch check out master instead.",
                "inputSchema": {
                    "type": "object",
                    "properties": checkout_properties,
                    "required": ["branch", "repositories"],
                },
                "columns": ["Repository", "Change"],
                "examples": [
                    {
                        "description": "Switch every repository to a feature branch",
                        "command": "githup checkout feature/login -r api web",
                    },
                ],
            },
            {
                "name": "upgrade",
                "description": "For repositories behind origin/master: checkout master, pull, checkout the original branch and merge master into it. Up-to-date repositories are left untouched.",
                "inputSchema": {
                    "type": "object",
                    "properties": _common_properties(),
                    "required": ["repositories"],
                },
                "columns": ["Repository", "Diff"],
                "examples": [
                    {
                        "description": "Bring feature branches up to date with master",
                        "command": "githup upgrade -r api web",
                    },
                ],
            },
        ],
        "notes": [
            "The branch argument of checkout must come before -r, which consumes every following path",
            "Failed repositories are reported on stderr and do not stop the others",
            "Lines are printed in completion order",
            "Set GITHUP_LOG_LEVEL=debug or GITHUP_DEBUG=1 to log every git command on stderr",
        ],
    }
