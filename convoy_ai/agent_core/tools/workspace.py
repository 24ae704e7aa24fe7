"""Built-in workspace tools.

``list_directory`` and ``read_file`` are always offered; ``write_file`` only
when writes are allowed. Every path is resolved against the run's
``ToolContext.working_dir`` and rejected if it leaves that directory.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List

from .base import ToolContext, ToolDefinition

WORKSPACE_TOOL_NAMES = ("list_directory", "read_file", "write_file")
PATH_ESCAPE_ERROR = "Access denied: path must stay inside the working directory."


def resolve_safe_path(working_dir: str, path: str) -> Path:
    """Resolve ``path`` under ``working_dir``, refusing anything outside it."""
    base = Path(working_dir).resolve()
    target = (base / path).resolve()
    if target != base and base not in target.parents:
        raise PermissionError(PATH_ESCAPE_ERROR)
    return target


def _required_path(input: Dict[str, Any]) -> str:
    path = input.get("path")
    if not isinstance(path, str) or not path:
        raise ValueError("path is required")
    return path


def _list_entries(directory: Path) -> List[Dict[str, str]]:
    return [
        {"name": entry.name, "type": "directory" if entry.is_dir() else "file"}
        for entry in sorted(directory.iterdir(), key=lambda e: e.name)
    ]


def _write_text(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


async def list_directory(input: Dict[str, Any], context: ToolContext) -> List[Dict[str, str]]:
    path = input.get("path") if isinstance(input.get("path"), str) else "."
    directory = resolve_safe_path(context.working_dir, path or ".")
    return await asyncio.to_thread(_list_entries, directory)


async def read_file(input: Dict[str, Any], context: ToolContext) -> Dict[str, str]:
    path = _required_path(input)
    target = resolve_safe_path(context.working_dir, path)
    content = await asyncio.to_thread(target.read_text, encoding="utf-8")
    return {"path": path, "content": content}


async def write_file(input: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
    path = _required_path(input)
    content = input.get("content")
    if not isinstance(content, str):
        raise ValueError("content is required")
    target = resolve_safe_path(context.working_dir, path)
    await asyncio.to_thread(_write_text, target, content)
    return {"path": path, "written": True}


def create_workspace_tools(*, allow_write: bool = True) -> List[ToolDefinition]:
    """Build the workspace tool definitions; ``write_file`` is omitted unless ``allow_write``."""
    tools = [
        ToolDefinition(
            name="list_directory",
            description="List files and folders at a path.",
            handler=list_directory,
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Directory path relative to the working directory"},
                },
                "required": ["path"],
            },
        ),
        ToolDefinition(
            name="read_file",
            description="Read UTF-8 text file contents.",
            handler=read_file,
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File path relative to the working directory"},
                },
                "required": ["path"],
            },
        ),
    ]
    if allow_write:
        tools.append(
            ToolDefinition(
                name="write_file",
                description="Write UTF-8 text file contents (create or overwrite).",
                handler=write_file,
                input_schema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "File path relative to the working directory"},
                        "content": {"type": "string", "description": "Text content to write"},
                    },
                    "required": ["path", "content"],
                },
            )
        )
    return tools
