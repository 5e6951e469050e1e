"""
Imperative command response: the object handlers write their results into.

Modes
- default: console text is written as it is produced (stdout/stderr), faults are
  rendered through rich on stderr.
- json: everything is buffered and finish() writes exactly one document:

      {"success": ..., "exitCode": ..., "message": ..., "stdout": ...,
       "stderr": ..., "data": ..., "error": ...}

  Incidental writes to sys.stdout while the handler runs are captured into the
  "stdout" field (see capture()).

Handler API
- response.console: log(), error(), error_header(), render()
- response.data: set_obj(), set_message(), set_exit_code()
- response.progress: start_bar(task), end_bar()
- response.format: output(output, format=..., fields=..., header=...)
- response.succeeded() / response.failed()
"""
import asyncio
import contextlib
import enum
import io
import json
import logging
import sys
from collections.abc import Mapping

import yaml
from rich.box import ROUNDED
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.text import Text

from .utils import *

logger = logging.getLogger(__name__)

FORMATS = ("string", "list", "object", "table")


def _merge(target, source):
    """Deep-merge source into target: mappings merge, lists concatenate, scalars replace."""
    if isinstance(target, Mapping) and isinstance(source, Mapping):
        merged = dict(target)
        for key, value in source.items():
            merged[key] = _merge(merged[key], value) if key in merged else value
        return merged
    if isinstance(target, list) and isinstance(source, list):
        return target + source
    return source


def _printf(message, values):
    return message % values if values else message


class TaskStage(enum.Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    FAILED = "failed"


class TaskProgress:
    """
    Progress of a long-running handler task, polled by the progress bar.

    Handlers update percent_complete (0..100), status_message and stage while
    working; the bar reads them periodically.
    """

    def __init__(self, status_message="", percent_complete=0, stage=TaskStage.NOT_STARTED):
        self.status_message = status_message
        self.percent_complete = percent_complete
        self.stage = stage

    def __repr__(self):
        return f"task-progress({self.percent_complete}%, {self.status_message!r}, {self.stage.value})"


class ResponseConsole:
    """Text output of a handler. Messages accept printf-style values."""

    def __init__(self, response, /):
        self._response = response

    def log(self, message, /, *values):
        self._response._write(_printf(str(message), values) + "\n")

    def error(self, message, /, *values):
        self._response._write(_printf(str(message), values) + "\n", stderr=True)

    def error_header(self, title, /):
        self.render(Text(f"\n{title}:", style="bold red"), stderr=True)

    def render(self, renderable, /, stderr=False):
        """Write any rich renderable (Text, Table, Panel, ...)."""
        self._response._write(self._response._render(renderable), stderr=stderr)


class ResponseData:
    """Structured result of a handler (the "data" and "message" JSON fields)."""

    def __init__(self, response, /):
        self._response = response

    def set_obj(self, object, /, merge=False):
        if merge and self._response._data is not None:
            object = _merge(self._response._data, object)
        self._response._data = object

    def set_message(self, message, /, *values):
        self._response._message = _printf(str(message), values)

    def set_exit_code(self, code, /):
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError("set_exit_code() argument must be an integer")
        self._response._exit_code = code


class ResponseProgress:
    """
    Progress bar fed by a TaskProgress, drawn with rich.progress on stderr.

    The bar is not drawn in JSON mode nor when stderr is not a terminal.
    """

    def __init__(self, response, /):
        self._response = response
        self._progress = None
        self._poller = None

    @property
    def active(self):
        return self._progress is not None

    def start_bar(self, task, /):
        if not isinstance(task, TaskProgress):
            raise TypeError("start_bar() argument must be a task progress")
        if self._progress is not None:
            raise RuntimeError("a progress bar is already active")
        response = self._response
        if response.json or not getattr(response._stderr_stream, "isatty", lambda: False)():
            logger.debug("progress bar disabled for %r", task)
            return
        self._progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=Console(file=response._stderr_stream, no_color=not response.context.colorful),
            transient=True,
        )
        identifier = self._progress.add_task(task.status_message, total=100)
        self._progress.start()

        async def poll():
            while True:
                self._progress.update(identifier, completed=task.percent_complete, description=task.status_message)
                await asyncio.sleep(0.1)

        try:
            self._poller = asyncio.get_running_loop().create_task(poll())
        except RuntimeError:
            self._poller = None

    def end_bar(self):
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None
        if self._progress is not None:
            self._progress.stop()
            self._progress = None


class ResponseFormat:
    """Print handler output in one of FORMATS."""

    def __init__(self, response, /):
        self._response = response

    def output(self, output, /, format="string", fields=(), header=False):
        """
        Print output.

        Formats
        - string: str(output).
        - list: one line per element.
        - object: YAML block of a mapping (or of each mapping in a list).
        - table: rich table over a list of mappings (or a single mapping).

        fields restricts the keys shown for mappings; header shows column names.
        """
        if format not in FORMATS:
            raise ValueError(f"format must be one of {', '.join(map(repr, FORMATS))}")
        if fields:
            output = self._filter(output, tuple(fields))

        console = self._response.console
        match format:
            case "string":
                console.log(output if isinstance(output, str) else json.dumps(output, default=str))
            case "list":
                for item in output if isinstance(output, list | tuple) else [output]:
                    console.log(item if isinstance(item, str) else json.dumps(item, default=str))
            case "object":
                for item in output if isinstance(output, list | tuple) else [output]:
                    console.log(yaml.safe_dump(item, sort_keys=False, default_flow_style=False).rstrip())
            case "table":
                console.render(self._table(output if isinstance(output, list | tuple) else [output], fields, header))

    def _filter(self, output, fields):
        if isinstance(output, Mapping):
            return {key: output[key] for key in fields if key in output}
        if isinstance(output, list | tuple):
            return [self._filter(item, fields) for item in output]
        return output

    def _table(self, rows, fields, header):
        columns = list(fields) or list(dict.fromkeys(key for row in rows if isinstance(row, Mapping) for key in row))
        table = Table(*columns, box=ROUNDED if header else None, show_header=bool(header), show_edge=bool(header))
        for row in rows:
            if not isinstance(row, Mapping):
                raise TypeError("table output requires mappings")
            table.add_row(*(str(coalesce(row.get(column), "")) for column in columns))
        return table


class CommandResponse:
    """
    Response of one command invocation.

    Parameters
    - context: Context (rendering switches, program name).
    - json: buffer everything and emit one JSON document on finish().
    - stdout / stderr: destination streams (sys.stdout / sys.stderr by default).
    """

    def __init__(self, context, /, json=False, stdout=Unset, stderr=Unset):
        self._context = context
        self._json = bool(json)
        self._stdout_stream = coalesce(stdout, sys.stdout)
        self._stderr_stream = coalesce(stderr, sys.stderr)
        self._stdout = io.StringIO()
        self._stderr = io.StringIO()
        self._data = None
        self._message = ""
        self._exit_code = Unset
        self._error = None
        self._success = True
        self._finished = False

        self.console = ResponseConsole(self)
        self.data = ResponseData(self)
        self.progress = ResponseProgress(self)
        self.format = ResponseFormat(self)

    context = mirror("context")
    json = mirror("json")
    message = mirror("message")
    error = mirror("error")

    @property
    def stdout(self):
        return self._stdout.getvalue()

    @property
    def stderr(self):
        return self._stderr.getvalue()

    @property
    def success(self):
        return self._success

    @property
    def exit_code(self):
        return coalesce(self._exit_code, 0 if self._success else 1)

    @property
    def result(self):
        return self._data

    def succeeded(self):
        self._success = True

    def failed(self):
        self._success = False

    def fail(self, error, /):
        """
        Record a fault as the outcome and render it.

        The fault is rendered once: on stderr in default mode, as the "error"
        field of the document in JSON mode.
        """
        self._success = False
        self._error = error
        if self._exit_code is Unset:
            self._exit_code = error.exit_code
        if not self._json:
            context = self._context
            self.console.render(
                error.__replace__(
                    prog=context.name,
                    colorful=context.colorful,
                    fancy=context.fancy,
                    styles=context.styles,
                    diagnostic=context.diagnostic,
                ),
                stderr=True,
            )

    @contextlib.contextmanager
    def capture(self):
        """Redirect sys.stdout into the response buffer while in JSON mode."""
        if not self._json:
            yield self
            return
        with contextlib.redirect_stdout(self._stdout):
            yield self

    def build_json(self):
        """Return the JSON response document."""
        error = self._error
        if error is not None:
            error = error.__replace__(diagnostic=self._context.diagnostic).to_json()
        return {
            "success": self._success,
            "exitCode": self.exit_code,
            "message": self._message,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "data": self._data,
            "error": error,
        }

    def finish(self):
        """Flush the response: in JSON mode write the document, once."""
        if self._finished:
            return
        self._finished = True
        self.progress.end_bar()
        if self._json:
            self._stdout_stream.write(json.dumps(self.build_json(), indent=2, default=str) + "\n")
            self._stdout_stream.flush()

    def _render(self, renderable):
        buffer = io.StringIO()
        colorful = self._context.colorful and not self._json
        console = Console(
            file=buffer,
            force_terminal=colorful,
            color_system="auto" if colorful else None,
            highlight=False,
            width=Console().width if colorful else 100,
        )
        console.print(renderable)
        return buffer.getvalue()

    def _write(self, text, /, stderr=False):
        (self._stderr if stderr else self._stdout).write(text)
        if not self._json:
            stream = self._stderr_stream if stderr else self._stdout_stream
            stream.write(text)
            stream.flush()


__all__ = (
    "CommandResponse",
    "TaskProgress",
    "TaskStage",
    "FORMATS",
)
