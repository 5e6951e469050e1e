"""
Imperative faults and their rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing failure, grouped by the
  processing stage that raises them.
- CommandError: base type carrying a message plus read-only options. Each fault knows
  how to render itself through rich (__rich__) and how to serialize itself for the
  JSON response document (to_json).
- The taxonomy used by the command processor:
  • UnknownCommandError / UnknownOptionError: command line does not match the tree.
  • ProfileNotFoundError / ProfileStoreError: profile resolution failures.
  • TooManyPositionalsError / MissingPositionalError: positional count mismatch.
  • ValidationError: constraint violation, carrying the option name and its definition.
  • HandlerNotFoundError: a command node whose handler cannot be resolved.
  • HandlerExpectedError: raised by handlers for intentional, user-facing failures.
  • UnexpectedInternalError: anything else a handler raised.
- DefinitionError: mistakes in the command definition tree itself (developer-facing).

Rendering
- Options recognized while rendering: prog, colorful, fancy, styles, diagnostic.
  They are merged at report time through __replace__(**overrides), so the raise site
  only supplies the facts (message, code, hint, payload).
- Payload options that are not rendering options end up in to_json().
"""
from collections import defaultdict
from collections.abc import Mapping
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - routing (111xx): UNKNOWN_COMMAND, UNKNOWN_OPTION
    - profiles (112xx): PROFILE_NOT_FOUND, PROFILE_STORE_INVALID
    - positionals (113xx): TOO_MANY_POSITIONALS, MISSING_POSITIONAL
    - syntax (114xx): one code per validator check
    - handlers (115xx): HANDLER_NOT_FOUND, HANDLER_FAILED, UNEXPECTED_INTERNAL
    """
    # --- routing ---
    UNKNOWN_COMMAND             = 11101
    UNKNOWN_OPTION              = 11102

    # --- profiles ---
    PROFILE_NOT_FOUND           = 11201
    PROFILE_STORE_INVALID       = 11202

    # --- positionals ---
    TOO_MANY_POSITIONALS        = 11301
    MISSING_POSITIONAL          = 11302

    # --- syntax ---
    MISSING_OPTION              = 11401
    INVALID_TYPE                = 11402
    INVALID_VALUE               = 11403
    CONFLICTING_OPTIONS         = 11404
    ABSENCE_IMPLICATION         = 11405
    EMPTY_VALUE                 = 11406
    SPECIFIED_MULTIPLE_TIMES    = 11407
    IMPLICATION                 = 11408
    VALUE_IMPLICATION           = 11409
    OUT_OF_RANGE                = 11410
    INVALID_LENGTH              = 11411
    DUPLICATED_VALUE            = 11412
    PATTERN_MISMATCH            = 11413
    MUST_SPECIFY_ONE            = 11414
    ONLY_ONE_OF                 = 11415
    FILE_NOT_FOUND              = 11416

    # --- handlers ---
    HANDLER_NOT_FOUND           = 11501
    HANDLER_FAILED              = 11502
    UNEXPECTED_INTERNAL         = 11503


# Options consumed by __rich__ and never serialized
_RENDERING = frozenset({"prog", "colorful", "fancy", "styles", "diagnostic"})

_STYLES = {
    # header parts
    "prog-name": "bold #E6E6F0",
    "code": "bold #00E5FF",
    "error-title": "bold #FF4DA6",

    # body
    "error-message": "#C8C8D0",
    "error-detail": "#8A8A96",
    "hint-arrow": "#9CE19C dim",
    "hint": "italic #9CE19C",
}


def _jsonable(object):
    if hasattr(object, "to_json") and callable(object.to_json):
        return object.to_json()
    if isinstance(object, BaseException):
        return str(object)
    if isinstance(object, Mapping):
        return {str(key): _jsonable(value) for key, value in object.items()}
    if isinstance(object, list | tuple | set | frozenset):
        return [_jsonable(value) for value in object]
    if object is Unset:
        return None
    return object


class CommandError(Exception):
    """
    Base type for every fault the command processor reports to the user.

    Class attributes
    - __fault__: default FaultCode, overridable per instance with code=...
    - __title__: short lowercase title shown in the header.

    Common options
    - code, title, hint: override the class defaults.
    - exit_code: process exit code for this failure (1 unless stated).
    """
    __fault__ = FaultCode.UNEXPECTED_INTERNAL
    __title__ = "command error"

    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError(f"{type(self).__name__}() message must be a string")
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code", type(self).__fault__)

    @property
    def title(self):
        return self.options.get("title", type(self).__title__)

    @property
    def hint(self):
        return self.options.get("hint")

    @property
    def exit_code(self):
        return self.options.get("exit_code", 1)

    def details(self):
        """Extra lines rendered below the message. Empty by default."""
        return ()

    def __rich__(self):
        colorful = self.options.get("colorful", False)
        styles = defaultdict(str, _STYLES | dict(self.options.get("styles", {})))

        def text(fragment, style):
            return Text(str(fragment), styles[style] if colorful else "")

        header = Text.assemble(
            "[ ",
            text(self.options.get("prog", "imperative"), "prog-name"),
            " : ",
            text(int(self.code), "code"),
            " | ",
            text(self.title.title(), "error-title"),
            " ]",
        )
        body = [text(self.message, "error-message")]
        body.extend(text(detail, "error-detail") for detail in self.details())
        if self.hint:
            body.append(Text.assemble(text(" → ", "hint-arrow"), text(self.hint, "hint")))

        if self.options.get("fancy", False):
            return Panel(Group(*body), title=header, title_align="left")
        return Group(header, *body)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})

    def to_json(self):
        """Structured form embedded as "error" in the JSON response document."""
        document = {
            "code": int(self.code),
            "title": self.title,
            "message": self.message,
        }
        if self.hint:
            document["hint"] = self.hint
        for key, value in self.options.items():
            if key in _RENDERING or key in ("code", "title", "hint"):
                continue
            document[key] = _jsonable(value)
        return document


class UnknownCommandError(CommandError):
    __fault__ = FaultCode.UNKNOWN_COMMAND
    __title__ = "unknown command"

    @property
    def hint(self):
        if hint := self.options.get("hint"):
            return hint
        if suggestions := self.options.get("suggestions"):
            return "did you mean %s?" % " or ".join(map(repr, suggestions))
        return None


class UnknownOptionError(UnknownCommandError):
    __fault__ = FaultCode.UNKNOWN_OPTION
    __title__ = "unknown option"


class ProfileNotFoundError(CommandError):
    __fault__ = FaultCode.PROFILE_NOT_FOUND
    __title__ = "profile not found"


class ProfileStoreError(CommandError):
    __fault__ = FaultCode.PROFILE_STORE_INVALID
    __title__ = "invalid profile store"


class ValidationError(CommandError):
    """
    Syntax constraint violation.

    Options
    - option: name of the offending option or positional.
    - definition: its Option/Positional definition (serialized in JSON mode).
    """
    __fault__ = FaultCode.INVALID_VALUE
    __title__ = "syntax error"

    @property
    def option(self):
        return self.options.get("option")

    @property
    def definition(self):
        return self.options.get("definition")


class TooManyPositionalsError(ValidationError):
    __fault__ = FaultCode.TOO_MANY_POSITIONALS
    __title__ = "too many positionals"


class MissingPositionalError(ValidationError):
    __fault__ = FaultCode.MISSING_POSITIONAL
    __title__ = "missing positional"


class HandlerNotFoundError(CommandError):
    __fault__ = FaultCode.HANDLER_NOT_FOUND
    __title__ = "handler instantiation failed"


class HandlerExpectedError(CommandError):
    """
    Intentional, user-facing failure raised by a command handler.

    Options
    - additional_details: str shown below the message.
    - cause: the underlying exception, rendered as a cause chain.
    - exit_code: exit code for the process (defaults to 1).

    Example
        raise HandlerExpectedError("data set not found", additional_details=reason)
    """
    __fault__ = FaultCode.HANDLER_FAILED
    __title__ = "command error"

    def details(self):
        if details := self.options.get("additional_details"):
            yield str(details)
        cause = self.options.get("cause", Unset)
        while cause not in (Unset, None):
            yield f"caused by: {type(cause).__name__}: {cause}"
            cause = coalesce(getattr(cause, "__cause__", None))


class UnexpectedInternalError(CommandError):
    """
    Anything other than HandlerExpectedError raised by a handler.

    The message is generic. The cause and its stack are rendered and serialized
    only when the diagnostic option is set.
    """
    __fault__ = FaultCode.UNEXPECTED_INTERNAL
    __title__ = "unexpected command error"

    def details(self):
        if not self.options.get("diagnostic", False):
            return
        if (cause := self.options.get("cause")) is not None:
            yield f"{type(cause).__name__}: {cause}"
        if stack := self.options.get("stack"):
            yield from str(stack).rstrip().splitlines()

    def to_json(self):
        document = super().to_json()
        if not self.options.get("diagnostic", False):
            document.pop("cause", None)
            document.pop("stack", None)
        return document


class DefinitionError(ValueError):
    """Invalid command definition tree (raised while the tree is being built)."""


__all__ = (
    "FaultCode",
    "CommandError",
    "UnknownCommandError",
    "UnknownOptionError",
    "ProfileNotFoundError",
    "ProfileStoreError",
    "ValidationError",
    "TooManyPositionalsError",
    "MissingPositionalError",
    "HandlerNotFoundError",
    "HandlerExpectedError",
    "UnexpectedInternalError",
    "DefinitionError",
)
