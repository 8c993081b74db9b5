from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Final, Literal, cast


WorkflowCommand = Literal["group", "endgroup", "error", "warning", "notice", "debug"]

_WORKFLOW_COMMANDS: Final[frozenset[str]] = frozenset(
    {"group", "endgroup", "error", "warning", "notice", "debug"}
)
_TIMESTAMP_RE: Final[re.Pattern[str]] = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z) ?(.*)$", re.DOTALL
)
_ANSI_RE: Final[re.Pattern[str]] = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
_HASH_COMMAND_RE: Final[re.Pattern[str]] = re.compile(r"^##\[([A-Za-z]+)\](.*)$", re.DOTALL)
_COLON_COMMAND_RE: Final[re.Pattern[str]] = re.compile(
    r"^::([A-Za-z]+)(?: ([^:]*))?::(.*)$", re.DOTALL
)
_JOB_ARCHIVE_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r"^\d+_")
_COMMAND_PREFIX: Final[str] = "[command]"
PREAMBLE_STEP_NAME: Final[str] = "Set up job"
UNNAMED_STEP_NAME: Final[str] = "(unnamed step)"


@dataclass(frozen=True)
class LogLine:
    text: str
    timestamp: str | None = None
    is_error: bool = False
    is_command: bool = False
    command: WorkflowCommand | None = None
    group_level: int = 0
    location: str | None = None


@dataclass(frozen=True)
class ParsedLine:
    line: LogLine
    group_title: str | None
    is_metadata: bool


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def clean_job_name(raw_name: str) -> str:
    name = raw_name.strip()
    if name.endswith(".txt"):
        name = name[: -len(".txt")]
    return _JOB_ARCHIVE_PREFIX_RE.sub("", name, count=1) or raw_name.strip()


def parse_line(raw: str, *, group_level: int = 0) -> ParsedLine:
    timestamp: str | None = None
    content = raw.rstrip("\r")
    match = _TIMESTAMP_RE.match(content)
    if match is not None:
        timestamp, content = match.group(1), match.group(2)
    content = strip_ansi(content)

    is_command = False
    if content.startswith(_COMMAND_PREFIX):
        is_command = True
        content = content[len(_COMMAND_PREFIX) :]

    command, message, location = _split_workflow_command(content)
    if command == "group":
        title = message.strip() or UNNAMED_STEP_NAME
        return ParsedLine(
            line=LogLine(text=title, timestamp=timestamp, command="group", group_level=group_level),
            group_title=title,
            is_metadata=True,
        )

    is_metadata = command in {"endgroup", "debug"} and not message.strip()
    is_error = command == "error" or (command is None and "error:" in message.lower())
    return ParsedLine(
        line=LogLine(
            text=message,
            timestamp=timestamp,
            is_error=is_error,
            is_command=is_command,
            command=command,
            group_level=group_level,
            location=location,
        ),
        group_title=None,
        is_metadata=is_metadata,
    )


def parse_job_log(text: str) -> tuple[tuple[str, tuple[LogLine, ...]], ...]:
    """Split a raw job log into (step name, lines) pairs in execution order.

    Every ``group`` command opens a new step. Output that precedes the first
    group is kept as a synthetic setup step so no error line is dropped.
    """
    preamble: list[LogLine] = []
    steps: list[tuple[str, list[LogLine]]] = []
    current: list[LogLine] | None = None
    group_level = 0

    for raw in text.splitlines():
        parsed = parse_line(raw, group_level=group_level)
        if parsed.group_title is not None:
            current = []
            steps.append((parsed.group_title, current))
            group_level = 1
            continue
        if parsed.line.command == "endgroup":
            group_level = 0
        if parsed.is_metadata:
            continue
        if current is None:
            preamble.append(parsed.line)
        else:
            current.append(parsed.line)

    out: list[tuple[str, tuple[LogLine, ...]]] = []
    if preamble:
        out.append((PREAMBLE_STEP_NAME, tuple(preamble)))
    out.extend((name, tuple(lines)) for name, lines in steps)
    return tuple(out)


def _split_workflow_command(content: str) -> tuple[WorkflowCommand | None, str, str | None]:
    hash_match = _HASH_COMMAND_RE.match(content)
    if hash_match is not None and hash_match.group(1).lower() in _WORKFLOW_COMMANDS:
        return cast(WorkflowCommand, hash_match.group(1).lower()), hash_match.group(2), None

    colon_match = _COLON_COMMAND_RE.match(content)
    if colon_match is not None and colon_match.group(1).lower() in _WORKFLOW_COMMANDS:
        params = _parse_command_params(colon_match.group(2) or "")
        return (
            cast(WorkflowCommand, colon_match.group(1).lower()),
            colon_match.group(3),
            _location_from_params(params),
        )

    return None, content, None


def _parse_command_params(raw: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in raw.split(","):
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        params[key.strip()] = value.strip()
    return params


def _location_from_params(params: dict[str, str]) -> str | None:
    path = params.get("file")
    if not path:
        return None
    line = params.get("line")
    if not line:
        return path
    col = params.get("col")
    if not col:
        return f"{path}:{line}"
    return f"{path}:{line}:{col}"
