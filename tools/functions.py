"""
Built-in Tools
--------------
Local read-only tools exposed to the model: read_file, list_files,
git_status and git_diff.

Rules:
- Relative paths resolve against the project root
- No shell=True in subprocess
- Errors are raised with a hint the model can act on
- Nothing here can block forever: git runs under a timeout and
  read_file only opens regular files
"""

from fnmatch import fnmatch
from pathlib import Path
from typing import List, Optional
import os
import subprocess

from pydantic import Field

from .registry import Tool, ToolArguments, ToolRegistry


MAX_FILE_SIZE_BYTES = 1024 * 1024
GIT_TIMEOUT_SECONDS = 25.0
LINE_ENDINGS = "\r\n"

READ_FILE_USAGE = '{"path":"filename"} e.g., {"path":"TODO.md"}'
LIST_FILES_USAGE = (
    '{} for current dir, {"recursive":true} for recursive, '
    'or {"path":"dir","recursive":true}'
)
GIT_STATUS_USAGE = '{} or {"short":true}'
GIT_DIFF_USAGE = '{}, {"staged":true} or {"file":"path"}'


class ReadFileArgs(ToolArguments):
    path: str = Field(
        description=(
            "File path to read (required). Examples: 'TODO.md', 'main.go', "
            "'internal/api/client.go'"
        ),
    )
    startLine: Optional[int] = Field(
        default=None, ge=1, description="Starting line number (1-based, optional)"
    )
    endLine: Optional[int] = Field(
        default=None, ge=1, description="Ending line number (1-based, optional)"
    )


class ListFilesArgs(ToolArguments):
    path: str = Field(
        default=".", description="Directory path to list (default: current directory '.')"
    )
    pattern: str = Field(
        default="", description="Glob pattern to filter files (e.g., '*.go', '*.md')"
    )
    recursive: bool = Field(
        default=False,
        description="List files recursively in all subdirectories (default: false)",
    )


class GitStatusArgs(ToolArguments):
    short: bool = Field(default=False, description="Show status in short format")


class GitDiffArgs(ToolArguments):
    file: str = Field(default="", description="Specific file to diff")
    staged: bool = Field(default=False, description="Show staged changes")
    nameOnly: bool = Field(default=False, description="Show only file names")


class BuiltinTools:
    """Executors for the built-in tools, bound to one project root."""

    def __init__(self, project_root: str = "."):
        self.project_root = Path(project_root).expanduser().resolve()

    def _resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self.project_root / candidate
        return candidate

    def read_file(self, params: ReadFileArgs) -> str:
        if not params.path.strip():
            raise ValueError(f"path is required. Use: {READ_FILE_USAGE}")

        target = self._resolve(params.path)
        if not target.exists():
            raise FileNotFoundError(
                f"file not found: {params.path}. Use list_files to see available files"
            )
        if target.is_dir():
            raise IsADirectoryError(f"{params.path} is a directory. Use list_files instead")
        if not target.is_file():
            # Pipes and devices would block the worker thread
            raise ValueError(f"{params.path} is not a regular file")

        size = target.stat().st_size
        if size > MAX_FILE_SIZE_BYTES:
            raise ValueError(
                f"file too large ({size} bytes), limit is 1MB. "
                f"Consider using startLine/endLine to read portions"
            )

        lines: List[str] = []
        with open(target, "r", encoding="utf-8", errors="replace") as f:
            for number, line in enumerate(f, start=1):
                if params.startLine and number < params.startLine:
                    continue
                if params.endLine and number > params.endLine:
                    break
                lines.append(f"{number:4d}: {line.rstrip(LINE_ENDINGS)}")

        if not lines:
            if params.startLine or params.endLine:
                return (
                    f"No content in specified range "
                    f"(lines {params.startLine or 0}-{params.endLine or 0})"
                )
            return "File is empty"

        return "\n".join(lines)

    def list_files(self, params: ListFilesArgs) -> str:
        display_root = params.path or "."
        target = self._resolve(display_root)

        if not target.exists():
            raise FileNotFoundError(f"cannot access path {display_root}: no such file or directory")
        if not target.is_dir():
            return display_root

        files: List[str] = []
        if params.recursive:
            for dirpath, dirnames, filenames in os.walk(target):
                # Prune hidden directories in place
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                relative = os.path.relpath(dirpath, target)
                for name in filenames:
                    if params.pattern and not fnmatch(name, params.pattern):
                        continue
                    files.append(os.path.normpath(os.path.join(display_root, relative, name)))
        else:
            for entry in os.scandir(target):
                if entry.name.startswith("."):
                    continue
                if params.pattern and not fnmatch(entry.name, params.pattern):
                    continue
                path = os.path.normpath(os.path.join(display_root, entry.name))
                if entry.is_dir():
                    path += "/"
                files.append(path)

        files.sort()

        if not files:
            if params.pattern:
                return f"No files matching pattern '{params.pattern}' in {display_root}"
            return f"No files in {display_root}"

        return "\n".join(files)

    def git_status(self, params: GitStatusArgs) -> str:
        command = ["git", "status"]
        if params.short:
            command.append("--short")

        result = self._run_git(command)
        if result.returncode != 0:
            raise RuntimeError(f"git status failed (exit {result.returncode})\n{result.stdout}")

        return result.stdout.strip()

    def git_diff(self, params: GitDiffArgs) -> str:
        command = ["git", "diff"]
        if params.staged:
            command.append("--cached")
        if params.nameOnly:
            command.append("--name-only")
        if params.file:
            command.extend(["--", params.file])

        result = self._run_git(command)
        # Exit code 1 means differences were found
        if result.returncode not in (0, 1):
            raise RuntimeError(f"git diff failed (exit {result.returncode})\n{result.stdout}")

        output = result.stdout.strip()
        if result.returncode == 0 and not output:
            return "No changes detected"
        return output

    def _run_git(self, command: List[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            command,
            cwd=str(self.project_root),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
        )


def create_builtin_registry(project_root: str = ".") -> ToolRegistry:
    """Create a registry with the built-in tools bound to a project."""
    builtins = BuiltinTools(project_root)
    registry = ToolRegistry()

    registry.register(Tool(
        name="read_file",
        description=(
            'Read a file. Examples: {"path":"TODO.md"}, {"path":"main.go"}, '
            '{"path":"internal/api/client.go"}'
        ),
        args_model=ReadFileArgs,
        executor=builtins.read_file,
        usage=READ_FILE_USAGE,
        category="filesystem",
    ))

    registry.register(Tool(
        name="list_files",
        description=(
            'List files in a directory. Examples: {} lists current dir, '
            '{"recursive":true} lists all files recursively, '
            '{"path":"internal","recursive":true} lists internal/ recursively'
        ),
        args_model=ListFilesArgs,
        executor=builtins.list_files,
        usage=LIST_FILES_USAGE,
        category="filesystem",
    ))

    registry.register(Tool(
        name="git_status",
        description="Get the current git repository status",
        args_model=GitStatusArgs,
        executor=builtins.git_status,
        usage=GIT_STATUS_USAGE,
        category="git",
    ))

    registry.register(Tool(
        name="git_diff",
        description="Show changes between commits, commit and working tree, etc",
        args_model=GitDiffArgs,
        executor=builtins.git_diff,
        usage=GIT_DIFF_USAGE,
        category="git",
    ))

    return registry
