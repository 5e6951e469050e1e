"""
Imperative utilities (internal helpers, carefully exposed)

Scope
- Small building blocks shared by the definition, mapping and processing layers.
- Stable enough for handlers to use, but designed primarily for the framework itself.

Overview
- UnsetType / Unset
  • Sentinel for "value not provided". None is a legitimate option default, so it
    cannot double as the marker.

- coalesce(value, default=None)
  • Replace Unset with a default while preserving falsey values like None/0/""/[].

- rename(callable, name) / @rename("name")
  • Stable __name__/__qualname__ for generated callables.

- mirror("attr")
  • Read-only property over a private backing field. Containers come back frozen
    (tuple, frozenset, MappingProxyType) so the definition tree cannot be edited
    through its public surface.

- kebab(name) / camel(name) / dashed(name)
  • Option spelling conversions: "account-number" <-> "accountNumber", and the
    dash form used on the command line ("-a", "--account-number").

- envname(prefix, name)
  • Environment variable that carries an option value ("ZOWE_OPT_ACCOUNT_NUMBER").

- censor(name, value, secure=())
  • Mask credential-like values before they reach logs or --show-inputs-only.

- suggest(word, candidates) / ordinal(number)
  • "did you mean" candidates and "first"/"second"/.../"11th" labels for messages.
"""
import builtins
import difflib
import functools
import re
from collections.abc import Mapping, Sequence, Set
from types import MappingProxyType
from typing import final

CENSORED_OPTIONS = frozenset({
    "auth",
    "p",
    "pass",
    "password",
    "passphrase",
    "credentials",
    "authentication",
    "basic-auth",
    "basicAuth",
})
"""Option names whose values never reach logs, whatever their profile schema says."""

CENSOR_RESPONSE = "****"


@final
class UnsetType:
    """
    Sentinel type for a value that was not provided.

    Characteristics
    - Boolean-false, distinct from None and 0.
    - repr() is "Unset".
    - Singleton and sealed: UnsetType() always yields the same instance.
    """

    def __or__(self, other, /):
        # Allows isinstance(x, str | Unset)
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Return object unless it is Unset, in which case return default.

    Falsey values are preserved: coalesce(None, 1) is None, coalesce(0, 1) is 0.
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set __name__/__qualname__ on a callable, or return a decorator doing so.

    Forms
    - rename(callable, name) -> callable
    - @rename(name)
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _freeze(object):
    """
    Recursively turn containers into their read-only counterparts.

    - Mapping → MappingProxyType over a fresh dict (keys kept, values frozen)
    - Set → frozenset
    - Sequence (non-string) → tuple
    - anything else is returned as-is (Unset included)
    """
    if isinstance(object, Mapping):
        return MappingProxyType({key: _freeze(value) for key, value in object.items()})
    elif isinstance(object, Set):
        return frozenset(object)
    elif isinstance(object, Sequence) and not isinstance(object, str | bytes):
        return tuple(map(_freeze, object))
    return object


def mirror(name, /):
    """
    Define a read-only property that mirrors the backing attribute "_{name}".

    Container values are returned frozen, see _freeze().
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _freeze(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def kebab(name, /):
    """
    Convert an option name to its kebab-case form.

    >>> kebab("accountNumber")
    'account-number'
    >>> kebab("account_number")
    'account-number'
    """
    name = re.sub(r"(?<=[a-z0-9])([A-Z])", r"-\1", name.replace("_", "-"))
    return name.lower() if name != name.upper() or len(name) > 1 else name


@functools.cache
def camel(name, /):
    """
    Convert an option name to its camelCase form.

    >>> camel("account-number")
    'accountNumber'
    """
    return re.sub(r"-+([A-Za-z0-9])", lambda match: match.group(1).upper(), name)


def dashed(name, /):
    """Return the command line spelling of an option name: "-h" or "--host"."""
    return ("-" if len(name) == 1 else "--") + name


def envname(prefix, name, /):
    """
    Build the environment variable name that overrides an option.

    >>> envname("ZOWE", "accountNumber")
    'ZOWE_OPT_ACCOUNT_NUMBER'
    """
    return f"{prefix}_OPT_{kebab(name).upper().replace('-', '_')}"


def censor(name, value, /, secure=()):
    """
    Return CENSOR_RESPONSE for credential-like options, the value otherwise.

    An option is credential-like when any spelling of its name is listed in
    CENSORED_OPTIONS or in the given secure collection (secure profile fields).
    """
    spellings = {name, kebab(name), camel(name)}
    if spellings & CENSORED_OPTIONS or spellings & set(secure):
        return CENSOR_RESPONSE
    return value


def suggest(word, candidates, /, limit=3):
    """Return up to `limit` candidates close to word, closest first."""
    return difflib.get_close_matches(word, list(candidates), n=limit, cutoff=0.6)


@functools.cache
def ordinal(number, /):
    """
    Return a human-friendly ordinal label for a 1-based position.

    Words for 1..10, numeric suffixes afterwards ("11th", "22nd", "103rd").
    """
    try:
        return (
            "first", "second", "third", "fourth", "fifth",
            "sixth", "seventh", "eighth", "ninth", "tenth",
        )[number - 1] if number > 0 else str(number)
    except IndexError:
        pass

    if 10 < number % 100 < 20:
        return f"{number}th"
    return f"{number}%s" % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


Unset = UnsetType()
"""
Sentinel for "not provided".

Use it as a default where None is a meaningful user value, then materialize a
fallback with coalesce(value, default).
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "kebab",
    "camel",
    "dashed",
    "envname",
    "censor",
    "suggest",
    "ordinal",

    # Types
    "UnsetType",

    # Constants
    "Unset",
    "CENSORED_OPTIONS",
    "CENSOR_RESPONSE",
)
