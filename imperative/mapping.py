"""
Imperative argument mapping: from command line tokens to one resolved argument set.

Pipeline
1. parse(node, tokens) → CommandLine
   • splits tokens into option values and positional tokens,
   • accepts --name value, --name=value, -a value, bare booleans and --flag=true|false,
   • array options take every following non-option token and accumulate across repeats,
   • repeating a non-array option keeps every value (the validator rejects it),
   • unknown options raise UnknownOptionError with suggestions.
2. map(node, line, profiles) → ResolvedArguments
   • layers, lowest precedence first: definition defaults, profile values,
     environment variables (<PREFIX>_OPT_<NAME>), explicit command line values,
   • array values from profiles and the environment concatenate; a command line
     value replaces them; a default is used only when no layer supplies a value,
   • positional tokens are assigned in declared order, an array positional takes
     the rest, and extra tokens raise TooManyPositionalsError,
   • prompts (rich.prompt) for values equal to the prompt phrase, and, in
     interactive contexts, for missing required promptable options. Secure
     options never echo.

The result is frozen: ResolvedArguments is a read-only mapping keyed by canonical
kebab-case names that also answers camelCase lookups.
"""
import logging
import shlex
from collections.abc import Mapping
from types import MappingProxyType

from rich.console import Console
from rich.prompt import Prompt

from .commands import booleanlike, optionlike
from .faults import TooManyPositionalsError, UnknownOptionError
from .profiles import LoadedProfiles
from .utils import *

logger = logging.getLogger(__name__)

DEFAULT = "default"
PROFILE = "profile"
ENVIRONMENT = "environment"
COMMAND_LINE = "command-line"
PROMPT = "prompt"


class CommandLine:
    """
    Parsed command line of one node.

    Attributes
    - values: option name → value (list for arrays and repeated options).
    - positionals: positional tokens in order.
    - tokens: the tokens that were parsed.
    """

    def __init__(self, values, positionals, tokens):
        self._values = dict(values)
        self._positionals = tuple(positionals)
        self._tokens = tuple(tokens)

    values = mirror("values")
    positionals = mirror("positionals")
    tokens = mirror("tokens")

    def __contains__(self, name):
        return name in self._values

    def get(self, name, default=None, /):
        return self._values.get(name, default)


class ResolvedArguments(Mapping):
    """
    Read-only resolved argument set.

    Keys are canonical (kebab-case) option and positional names; lookups also
    accept camelCase spellings. origin(name) tells which layer supplied a value.
    """

    def __init__(self, values, origins=MappingProxyType({})):
        self._values = MappingProxyType(dict(values))
        self._origins = MappingProxyType({name: origins.get(name, COMMAND_LINE) for name in self._values})

    origins = mirror("origins")

    def __getitem__(self, key, /):
        try:
            return self._values[key]
        except KeyError:
            return self._values[kebab(key)]

    def __contains__(self, key, /):
        return isinstance(key, str) and (key in self._values or kebab(key) in self._values)

    def __iter__(self):
        return iter(self._values)

    def __len__(self):
        return len(self._values)

    def __repr__(self):
        return f"resolved-arguments({dict(self._values)!r})"

    def origin(self, name, /):
        """Return the layer that supplied name, or None when absent."""
        return self._origins.get(kebab(name))

    def supplied(self, name, /):
        """Return True when name has a value from any layer but the defaults."""
        return self.origin(name) not in (None, DEFAULT)

    def censored(self, secure=(), /):
        """Return a plain dict with credential-like values masked."""
        return {name: censor(name, value, secure) for name, value in self._values.items()}

    def with_values(self, values, /):
        """Return a new argument set with values replaced, origins kept."""
        return type(self)(values, self._origins)


def _split(raw):
    try:
        return shlex.split(raw)
    except ValueError:
        return raw.split()


def _coerce(option, raw):
    """Coerce an environment or prompt string to the option type."""
    match option.type:
        case "boolean":
            return {"TRUE": True, "FALSE": False}.get(raw.strip().upper(), raw)
        case "number":
            for convert in (int, float):
                try:
                    return convert(raw)
                except ValueError:
                    pass
            return raw
        case "array":
            return _split(raw)
        case _:
            return raw


def _ask(message, /, secure=False, console=Unset):
    return Prompt.ask(message, password=secure, console=coalesce(console, Console(stderr=True)))


class ArgumentMapper:
    """
    Compute resolved argument sets for command nodes.

    Parameters
    - context: Context (environment prefix, environ snapshot, prompt settings).
    - prompt: callable(message, secure=bool) → str, used for interactive input.
      Defaults to rich.prompt.Prompt.ask on stderr.
    """

    def __init__(self, context, /, prompt=Unset):
        self._context = context
        self._prompt = coalesce(prompt, _ask)

    def parse(self, node, tokens, /):
        """
        Split the unconsumed tokens of node into option values and positionals.

        Raises
        - UnknownOptionError: a token names no option of node.
        """
        values, positionals = {}, []
        tokens = list(tokens)
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if token == "--":
                positionals.extend(tokens[index:])
                break
            if not optionlike(token):
                positionals.append(token)
                continue

            flag, assigned, inline = token.partition("=")
            if (option := node.lookup(flag)) is None:
                candidates = [spelling for known in node.options for spelling in known.flags if not known.hidden]
                raise UnknownOptionError(
                    f"unknown option {flag!r} for {node.route!r}",
                    token=flag,
                    route=node.route,
                    suggestions=suggest(flag, candidates),
                )

            name = option.name
            if option.type == "boolean":
                if not assigned and index < len(tokens) and booleanlike(tokens[index]):
                    assigned, inline = "=", tokens[index]
                    index += 1
                if not assigned:
                    value = True
                else:
                    value = {"true": True, "false": False}.get(inline.lower(), inline)
            elif option.type == "array":
                value = [inline] if assigned else []
                while not assigned and index < len(tokens) and not optionlike(tokens[index]) and tokens[index] != "--":
                    value.append(tokens[index])
                    index += 1
                values[name] = values.get(name, []) + value
                continue
            elif assigned:
                value = inline
            elif index < len(tokens) and not optionlike(tokens[index]) and tokens[index] != "--":
                value = tokens[index]
                index += 1
            else:
                value = ""

            if name in values:
                previous = values[name]
                values[name] = (previous if isinstance(previous, _Repeated) else _Repeated([previous])) + [value]
            else:
                values[name] = value

        values = {name: list(value) if isinstance(value, _Repeated) else value for name, value in values.items()}
        return CommandLine(values, positionals, tokens)

    def map(self, node, line, profiles=Unset, /):
        """
        Layer defaults, profile values, environment values and the command line.

        Positionals missing from the command line are taken from the profiles and
        the environment like options, by name.

        Raises
        - TooManyPositionalsError: more positional tokens than node declares.
        """
        profiles = coalesce(profiles, LoadedProfiles())
        values, origins = {}, {}

        for option in node.options:
            layered, origin = self._layer(option, option.default, profiles)
            if option.name in line:
                layered, origin = line.get(option.name), COMMAND_LINE
            if layered is not Unset:
                values[option.name] = layered
                origins[option.name] = origin

        self._assign_positionals(node, line.positionals, values, origins)
        for positional in node.positionals:
            if positional.name in values:
                continue
            layered, origin = self._layer(positional, Unset, profiles)
            if layered is not Unset:
                values[positional.name] = layered
                origins[positional.name] = origin
        self._prompt_for_missing(node, values, origins, profiles.secure)

        resolved = ResolvedArguments(values, origins)
        logger.debug("resolved arguments of %r: %s", node.route, resolved.censored(profiles.secure))
        return resolved

    def _layer(self, definition, default, profiles):
        """Return the value and origin of definition below the command line."""
        layered, origin = default, DEFAULT
        collected = []
        for source, value in (
                (PROFILE, self._from_profiles(definition, profiles)),
                (ENVIRONMENT, self._from_environment(definition)),
        ):
            if value is Unset:
                continue
            if definition.type == "array":
                collected.extend(value if isinstance(value, list | tuple) else [value])
            else:
                layered = value
            origin = source
        if collected:
            layered = collected
        return layered, origin

    def _from_profiles(self, definition, profiles):
        # Positionals are only known by their name
        for spelling in getattr(definition, "spellings", (definition.name,)):
            if spelling in profiles:
                return profiles[spelling]
        return Unset

    def _from_environment(self, definition):
        variable = envname(self._context.prefix, definition.name)
        if not (raw := self._context.environ.get(variable, "")):
            return Unset
        logger.debug("%r taken from %s", definition.name, variable)
        return _coerce(definition, raw)

    def _assign_positionals(self, node, tokens, values, origins):
        tokens = list(tokens)
        for positional in node.positionals:
            if not tokens:
                break
            if positional.type == "array":
                values[positional.name], tokens = tokens, []
            else:
                values[positional.name] = tokens.pop(0)
            origins[positional.name] = COMMAND_LINE
        if tokens:
            expected = len(node.positionals)
            raise TooManyPositionalsError(
                f"received {len(tokens)} unexpected positional value(s) for {node.route!r}: "
                + ", ".join(map(repr, tokens)),
                option="unknown",
                unexpected=tokens,
                expected=expected,
                hint=f"{node.route!r} takes {expected} positional argument(s)",
            )

    def _prompt_for_missing(self, node, values, origins, secure):
        phrase = self._context.prompt_phrase
        for definition in (*node.positionals, *node.options):
            name = definition.name
            forced = values.get(name) == phrase
            missing = (
                self._context.interactive
                and getattr(definition, "promptable", False)
                and definition.required
                and values.get(name) is None
            )
            if not (forced or missing):
                continue
            hidden = (
                getattr(definition, "secure", False)
                or name in secure
                or censor(name, None, secure) == CENSOR_RESPONSE
            )
            answer = self._prompt(f'Please enter "{name}"', secure=hidden)
            values[name] = _coerce(definition, answer)
            origins[name] = PROMPT


class _Repeated(list):
    """Values of a non-array option given more than once."""

    def __add__(self, other):
        return _Repeated(list.__add__(self, other))


__all__ = (
    "ArgumentMapper",
    "CommandLine",
    "ResolvedArguments",
    "DEFAULT",
    "PROFILE",
    "ENVIRONMENT",
    "COMMAND_LINE",
    "PROMPT",
)
