"""
Imperative configuration context.

Scope
- Context: the configuration of one CLI process, built once at entry and passed
  by reference to the command processor, the profile store and the response
  formatter. Nothing in the package reads configuration from module globals.
- configure_logging(context): route the "imperative" logger through rich.

Environment (for a CLI named "zowe" with prefix "ZOWE")
- ZOWE_CLI_HOME: directory holding profiles.yaml (default ~/.zowe).
- ZOWE_DIAGNOSTIC: "true"/"1" reveals stack traces of unexpected handler errors.
- ZOWE_LOG_LEVEL: level name for the imperative logger (default WARNING).
- ZOWE_OPT_<OPTION>: option values, see imperative.mapping.
- NO_COLOR: disables colored output.
"""
import logging
import os
import os.path
import sys
from types import MappingProxyType

from rich.console import Console
from rich.logging import RichHandler

from .utils import *

DEFAULT_PROMPT_PHRASE = "PROMPT*"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


class Context:
    """
    Read-only configuration of one CLI process.

    Attributes
    - name: program name shown in help and fault headers.
    - prefix: environment variable prefix (uppercase name by default).
    - home: profile/config storage root.
    - prompt_phrase: option value that forces an interactive prompt.
    - interactive: whether prompting is allowed for missing promptable options.
    - diagnostic: reveal stack traces of unexpected handler errors.
    - log_level: level name for the imperative logger.
    - colorful / fancy: rendering switches for help and faults.
    - styles: palette overrides for help and faults.
    - environ: snapshot of the environment used for option overlays.
    """
    __slots__ = (
        "_name",
        "_prefix",
        "_home",
        "_prompt_phrase",
        "_interactive",
        "_diagnostic",
        "_log_level",
        "_colorful",
        "_fancy",
        "_styles",
        "_environ",
    )

    def __init__(
            self,
            name,
            /,
            prefix=Unset,
            home=Unset,
            *,
            prompt_phrase=DEFAULT_PROMPT_PHRASE,
            interactive=False,
            diagnostic=False,
            log_level="WARNING",
            colorful=False,
            fancy=False,
            styles=MappingProxyType({}),
            environ=MappingProxyType({}),
    ):
        if not isinstance(name, str) or not (name := name.strip()):
            raise ValueError("context name must be a non-empty string")
        if not isinstance(prefix := coalesce(prefix, name.upper().replace("-", "_")), str) or not prefix:
            raise ValueError("context prefix must be a non-empty string")
        if not isinstance(prompt_phrase, str) or not prompt_phrase:
            raise ValueError("context prompt phrase must be a non-empty string")
        if not isinstance(log_level, str) or not isinstance(logging.getLevelName(log_level.upper()), int):
            raise ValueError(f"context log level {log_level!r} is not a logging level")

        self._name = name
        self._prefix = prefix
        self._home = coalesce(home, os.path.join(os.path.expanduser("~"), "." + name))
        self._prompt_phrase = prompt_phrase
        self._interactive = bool(interactive)
        self._diagnostic = bool(diagnostic)
        self._log_level = log_level.upper()
        self._colorful = bool(colorful)
        self._fancy = bool(fancy)
        self._styles = dict(styles)
        self._environ = dict(environ)

    name = mirror("name")
    prefix = mirror("prefix")
    home = mirror("home")
    prompt_phrase = mirror("prompt_phrase")
    interactive = mirror("interactive")
    diagnostic = mirror("diagnostic")
    log_level = mirror("log_level")
    colorful = mirror("colorful")
    fancy = mirror("fancy")
    styles = mirror("styles")
    environ = mirror("environ")

    def __repr__(self):
        return f"context(name={self._name!r}, prefix={self._prefix!r}, home={self._home!r})"

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        fields = {name.removeprefix("_"): getattr(self, name) for name in self.__slots__}
        fields |= overrides
        return type(self)(fields.pop("name"), fields.pop("prefix"), fields.pop("home"), **fields)

    @classmethod
    def from_environ(cls, name, /, prefix=Unset, environ=Unset, **overrides):
        """
        Build a context from the process environment.

        Keyword overrides win over values read from the environment.
        """
        environ = dict(coalesce(environ, os.environ))
        prefix = coalesce(prefix, name.upper().replace("-", "_"))
        options = {
            "interactive": sys.stdin is not None and sys.stdin.isatty(),
            "diagnostic": environ.get(f"{prefix}_DIAGNOSTIC", "").strip().lower() in _TRUTHY,
            "log_level": environ.get(f"{prefix}_LOG_LEVEL", "WARNING").strip() or "WARNING",
            "colorful": "NO_COLOR" not in environ and sys.stdout is not None and sys.stdout.isatty(),
            "environ": environ,
        }
        home = environ.get(f"{prefix}_CLI_HOME", "").strip() or Unset
        return cls(name, prefix, home, **(options | overrides))


def configure_logging(context, /, stream=Unset):
    """
    Attach a rich handler to the "imperative" logger at context.log_level.

    Repeated calls replace the handler installed by the previous call.
    """
    logger = logging.getLogger("imperative")
    for handler in list(logger.handlers):
        if getattr(handler, "_imperative", False):
            logger.removeHandler(handler)

    console = Console(file=coalesce(stream, sys.stderr), no_color=not context.colorful, stderr=stream is Unset)
    handler = RichHandler(console=console, show_path=context.diagnostic, rich_tracebacks=context.diagnostic)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    handler._imperative = True
    logger.addHandler(handler)
    logger.setLevel(context.log_level)
    return logger


__all__ = (
    "Context",
    "configure_logging",
    "DEFAULT_PROMPT_PHRASE",
)
