"""
Built-in tools.

File tools (read, write, edit, list, search, glob, read many), the shell
tool, web fetch and web search, and save_memory. Reading, listing,
searching, fetching and remembering run unattended; writing, editing and
running commands ask for confirmation first.

Blocking file I/O runs in a worker thread so the event loop stays free
to notice cancellation.
"""

import asyncio
import fnmatch
import glob as globlib
import logging
import os
import re
from collections.abc import Awaitable
from pathlib import Path
from typing import Any, TypeVar

import httpx

from shellmind.cancellation import CancellationToken
from shellmind.config import ShellmindConfig
from shellmind.sandbox import NoSandbox, Sandbox
from shellmind.shell import run_command
from shellmind.tools import Tool, ToolError, ToolRegistry
from shellmind.types import ExecutionOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXA_SEARCH_URL = "https://api.exa.ai/search"
SKIPPED_DIRS = {".git", ".hg", ".svn", "__pycache__", "node_modules"}
GLOB_CHARS = ("*", "?", "[")


def _param(params: dict[str, Any], key: str, placeholder: str) -> str:
    value = params.get(key) if isinstance(params, dict) else None
    return value if isinstance(value, str) else placeholder


def _schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


async def _until_cancelled(work: Awaitable[T], cancel: CancellationToken | None) -> T:
    """
    Await work, giving up as soon as the token fires.

    Raises:
        ToolError: If cancelled first
    """
    task = asyncio.ensure_future(work)
    if cancel is None:
        return await task
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    if task not in done:
        task.cancel()
        raise ToolError(f"Cancelled: {cancel.reason}")
    return task.result()


class ReadFileTool(Tool):
    name = "read_file"
    display_name = "Read File"
    description = "Reads the content of a specified file."

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {"path": {"type": "string", "description": "The path to the file to read."}},
            ["path"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        return f"Read file: {_param(params, 'path', 'unknown path')}"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        path = params["path"]
        try:
            content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ExecutionOutcome.fail(f"Failed to read file '{path}': {e}")
        return ExecutionOutcome.ok(content)


class WriteFileTool(Tool):
    name = "write_file"
    display_name = "Write File"
    description = "Writes content to a specified file."

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "path": {"type": "string", "description": "The path to the file to write."},
                "content": {"type": "string", "description": "The content to write to the file."},
            },
            ["path", "content"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        return f"Write to file: {_param(params, 'path', 'unknown path')}"

    def confirmation_message(self, params: dict[str, Any]) -> str | None:
        return "This will write content to a file. Are you sure?"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        path = params["path"]
        try:
            await asyncio.to_thread(Path(path).write_text, params["content"], encoding="utf-8")
        except OSError as e:
            return ExecutionOutcome.fail(f"Failed to write to file '{path}': {e}")
        return ExecutionOutcome.ok(f"Successfully wrote to file '{path}'.")


class EditFileTool(Tool):
    name = "edit_file"
    display_name = "Edit File"
    description = "Edits a file by replacing an old string with a new string."

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "file_path": {"type": "string", "description": "The path to the file to edit."},
                "old_string": {"type": "string", "description": "The string to be replaced."},
                "new_string": {
                    "type": "string",
                    "description": "The string to replace the old string with.",
                },
            },
            ["file_path", "old_string", "new_string"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        file_path = _param(params, "file_path", "unknown file")
        old = _param(params, "old_string", "unknown old string")
        new = _param(params, "new_string", "unknown new string")
        return f"Edit file '{file_path}': replace \"{old}\" with \"{new}\""

    def confirmation_message(self, params: dict[str, Any]) -> str | None:
        return "This will modify a file. Are you sure?"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        path = Path(params["file_path"])
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ExecutionOutcome.fail(f"Failed to read file '{path}': {e}")
        if params["old_string"] not in content:
            return ExecutionOutcome.fail(
                f"String to replace not found in file '{path}'."
            )
        updated = content.replace(params["old_string"], params["new_string"])
        try:
            await asyncio.to_thread(path.write_text, updated, encoding="utf-8")
        except OSError as e:
            return ExecutionOutcome.fail(f"Failed to write to file '{path}': {e}")
        return ExecutionOutcome.ok(f"Successfully edited file '{path}'.")


class ListDirectoryTool(Tool):
    name = "list_directory"
    display_name = "List Directory"
    description = "Lists the contents of a specified directory."

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {"path": {"type": "string", "description": "The path to the directory to list."}},
            ["path"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        return f"List contents of directory: {_param(params, 'path', 'current directory')}"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        path = params["path"]
        try:
            names = await asyncio.to_thread(os.listdir, path)
        except OSError as e:
            return ExecutionOutcome.fail(f"Failed to read directory '{path}': {e}")
        return ExecutionOutcome.ok("\n".join(sorted(names)))


class SearchFileContentTool(Tool):
    name = "search_file_content"
    display_name = "Search File Content"
    description = (
        "Searches for a regular expression pattern within the content of files "
        "in a specified directory."
    )

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "path": {
                    "type": "string",
                    "description": (
                        "The path to the directory to search within. "
                        "If omitted, searches the current working directory."
                    ),
                },
                "pattern": {
                    "type": "string",
                    "description": "The regular expression pattern to search for within file contents.",
                },
                "include": {
                    "type": "string",
                    "description": (
                        "Optional glob pattern to filter which files are searched "
                        "(e.g. *.py). If omitted, searches all files."
                    ),
                },
            },
            ["pattern"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        pattern = _param(params, "pattern", "unknown pattern")
        path = _param(params, "path", "current directory")
        return f"Search for pattern \"{pattern}\" in files under '{path}'"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        try:
            regex = re.compile(params["pattern"])
        except re.error as e:
            return ExecutionOutcome.fail(f"Invalid regex pattern: {e}")
        root = _param(params, "path", ".")
        include = params.get("include") if isinstance(params.get("include"), str) else None

        matches = await _until_cancelled(
            asyncio.to_thread(self._search, regex, root, include), cancel
        )
        if not matches:
            return ExecutionOutcome.ok("No matches found.")
        return ExecutionOutcome.ok("\n".join(matches))

    @staticmethod
    def _search(regex: re.Pattern[str], root: str, include: str | None) -> list[str]:
        if not os.path.isdir(root):
            raise ToolError(f"Directory not found: {root}")
        results: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
            for filename in sorted(filenames):
                file_path = os.path.join(dirpath, filename)
                if include and not (
                    fnmatch.fnmatch(filename, include)
                    or fnmatch.fnmatch(os.path.relpath(file_path, root), include)
                ):
                    continue
                try:
                    with open(file_path, encoding="utf-8") as fh:
                        for line_num, line in enumerate(fh, start=1):
                            line = line.rstrip("\n")
                            if regex.search(line):
                                results.append(f"{file_path}:{line_num}:{line}")
                except (OSError, UnicodeDecodeError):
                    # binary or unreadable
                    continue
        return results


class GlobTool(Tool):
    name = "glob"
    display_name = "Glob Search"
    description = "Finds files matching specific glob patterns."

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "pattern": {
                    "type": "string",
                    "description": "The glob pattern to match against (e.g. src/**/*.py, docs/*.md).",
                },
                "path": {
                    "type": "string",
                    "description": (
                        "Optional path to the directory to search within. "
                        "If omitted, searches the current directory."
                    ),
                },
            },
            ["pattern"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        pattern = _param(params, "pattern", "unknown pattern")
        path = _param(params, "path", "current directory")
        return f"Find files matching pattern \"{pattern}\" in '{path}'"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        full_pattern = os.path.join(_param(params, "path", "."), params["pattern"])
        matches = await _until_cancelled(
            asyncio.to_thread(globlib.glob, full_pattern, recursive=True), cancel
        )
        if not matches:
            return ExecutionOutcome.ok("No matches found.")
        return ExecutionOutcome.ok("\n".join(sorted(matches)))


class ShellTool(Tool):
    name = "run_shell_command"
    display_name = "Run Shell Command"
    description = "Executes a given shell command."

    def __init__(self, sandbox: Sandbox | None = None) -> None:
        self.sandbox = sandbox or NoSandbox()

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "command": {"type": "string", "description": "The exact shell command to execute."},
                "description": {
                    "type": "string",
                    "description": "Brief description of the command for the user. Be specific and concise.",
                },
            },
            ["command"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        command = _param(params, "command", "unknown command")
        description = _param(params, "description", "no description")
        return f"Run shell command: '{command}' (Description: {description})"

    def confirmation_message(self, params: dict[str, Any]) -> str | None:
        command = _param(params, "command", "unknown command")
        return f"This will execute the command: '{command}'. Are you sure?"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        try:
            result = await run_command(params["command"], cancel=cancel, sandbox=self.sandbox)
        except (OSError, ValueError) as e:
            return ExecutionOutcome.fail(f"Failed to execute command: {e}")
        return result.to_outcome()


class WebFetchTool(Tool):
    name = "web_fetch"
    display_name = "Web Fetch"
    description = "Fetches content from a specified URL."

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {"url": {"type": "string", "description": "The URL to fetch content from."}},
            ["url"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        return f"Fetch content from URL: {_param(params, 'url', 'unknown URL')}"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        url = params["url"]
        try:
            response = await _until_cancelled(self._get(url), cancel)
        except httpx.HTTPError as e:
            return ExecutionOutcome.fail(f"Failed to send request to URL: {e}")
        if not response.is_success:
            return ExecutionOutcome.fail(
                f"Failed to fetch URL: {url} (Status: {response.status_code})"
            )
        return ExecutionOutcome.ok(response.text)

    async def _get(self, url: str) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self.timeout, follow_redirects=True
        ) as client:
            return await client.get(url)


class WebSearchTool(Tool):
    name = "google_web_search"
    display_name = "Web Search"
    description = (
        "Searches the web through the Exa search API and returns the top results "
        "with their titles, URLs and text snippets."
    )

    def __init__(
        self,
        api_key: str | None = None,
        num_results: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.num_results = num_results
        self._transport = transport

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {"query": {"type": "string", "description": "The search query to find information on the web."}},
            ["query"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        return f"Search the web for: {_param(params, 'query', 'unknown query')}"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        api_key = self.api_key or os.environ.get("EXA_API_KEY")
        if not api_key:
            return ExecutionOutcome.fail("Error: EXA_API_KEY environment variable not set")

        query = params["query"]
        payload = {"query": query, "numResults": min(self.num_results, 10), "text": True}
        try:
            data = await _until_cancelled(self._search(api_key, payload), cancel)
        except httpx.HTTPStatusError as e:
            return ExecutionOutcome.fail(
                f"Search request failed with status {e.response.status_code}"
            )
        except (httpx.HTTPError, ValueError) as e:
            return ExecutionOutcome.fail(f"Search request failed: {e}")

        results = (data.get("results") or []) if isinstance(data, dict) else []
        if not results:
            return ExecutionOutcome.ok(f"No results found for: {query}")

        lines = [f"Search results for '{query}':", ""]
        for i, result in enumerate(results, start=1):
            title = result.get("title") or "Untitled"
            lines.append(f"{i}. {title}")
            lines.append(f"   URL: {result.get('url', '')}")
            snippet = (result.get("text") or "").strip().replace("\n", " ")
            if snippet:
                lines.append(f"   {snippet[:300]}")
            lines.append("")
        return ExecutionOutcome.ok("\n".join(lines).rstrip())

    async def _search(self, api_key: str, payload: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
            response = await client.post(
                EXA_SEARCH_URL,
                headers={"x-api-key": api_key, "Content-Type": "application/json"},
                json=payload,
            )
            response.raise_for_status()
            return response.json()


class MemoryTool(Tool):
    name = "save_memory"
    display_name = "Save Memory"
    description = "Saves a specific piece of information or fact to your long-term memory."

    def __init__(self, memory_file: str | Path) -> None:
        self.memory_file = Path(memory_file).expanduser()

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "fact": {
                    "type": "string",
                    "description": "The specific fact or piece of information to remember.",
                }
            },
            ["fact"],
        )

    def describe(self, params: dict[str, Any]) -> str:
        return f"Save to memory: {_param(params, 'fact', 'unknown fact')}"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        fact = " ".join(params["fact"].split())
        try:
            await asyncio.to_thread(self._append, fact)
        except OSError as e:
            return ExecutionOutcome.fail(f"Failed to save memory: {e}")
        return ExecutionOutcome.ok(f"Fact saved to memory: '{fact}'.")

    def _append(self, fact: str) -> None:
        self.memory_file.parent.mkdir(parents=True, exist_ok=True)
        with self.memory_file.open("a", encoding="utf-8") as fh:
            fh.write(f"- {fact}\n")


class ReadManyFilesTool(Tool):
    name = "read_many_files"
    display_name = "Read Many Files"
    description = "Reads content from multiple files specified by paths or glob patterns."

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return _schema(
            {
                "paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "An array of glob patterns or paths to files/directories.",
                }
            },
            ["paths"],
        )

    def validate(self, params: dict[str, Any]) -> bool:
        paths = params.get("paths") if isinstance(params, dict) else None
        return isinstance(paths, list) and all(isinstance(p, str) for p in paths)

    def describe(self, params: dict[str, Any]) -> str:
        paths = params.get("paths") if isinstance(params, dict) else None
        if isinstance(paths, list):
            rendered = ", ".join(p for p in paths if isinstance(p, str))
        else:
            rendered = "unknown paths"
        return f"Read content from multiple files: {rendered}"

    async def run(self, params: dict[str, Any], cancel: CancellationToken | None) -> ExecutionOutcome:
        sections = await _until_cancelled(
            asyncio.to_thread(self._read_all, params["paths"]), cancel
        )
        if not sections:
            return ExecutionOutcome.ok("No readable files found.")
        return ExecutionOutcome.ok("\n".join(sections))

    def _read_all(self, paths: list[str]) -> list[str]:
        sections: list[str] = []
        for path_str in paths:
            if any(ch in path_str for ch in GLOB_CHARS):
                for match in sorted(globlib.glob(path_str, recursive=True)):
                    if os.path.isfile(match):
                        sections.append(self._render(Path(match)))
                continue

            path = Path(path_str)
            if path.is_file():
                sections.append(self._render(path))
            elif path.is_dir():
                for dirpath, dirnames, filenames in os.walk(path):
                    dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
                    for filename in sorted(filenames):
                        sections.append(self._render(Path(dirpath) / filename))
            else:
                sections.append(f"--- {path} ---\nFile or directory not found.")
        return sections

    @staticmethod
    def _render(path: Path) -> str:
        try:
            return f"--- {path} ---\n{path.read_text(encoding='utf-8')}"
        except (OSError, UnicodeDecodeError) as e:
            return f"--- {path} ---\nError reading file: {e}"


def create_default_tools(
    config: ShellmindConfig,
    sandbox: Sandbox | None = None,
) -> ToolRegistry:
    """Create a registry holding every built-in tool."""
    registry = ToolRegistry()
    for tool in (
        ReadFileTool(),
        WriteFileTool(),
        EditFileTool(),
        ListDirectoryTool(),
        SearchFileContentTool(),
        GlobTool(),
        ShellTool(sandbox),
        WebFetchTool(),
        WebSearchTool(),
        MemoryTool(config.memory_file),
        ReadManyFilesTool(),
    ):
        registry.register(tool)
    return registry
