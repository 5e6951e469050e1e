r"""
Imperative argument definitions.

Overview
- Specs
  • Option: named argument with aliases, e.g. --host / -H.
  • Positional: value assigned from the command line in declared order.
  • AllowableValues: regular expressions a value must fully match, with a
    case-sensitivity flag.
  • PassOn: an option a group hands down to its descendants, with ignore rules
    per node name and node type.

- Introspection & representation
  • ArgumentType metaclass provides stable __repr__/__rich_repr__ and exposes the
    fields listed in __introspectable__ through read-only properties.
  • Every definition is sealed (no subclassing) and immutable once built. Use
    __replace__(**overrides) to derive a modified copy.

Metadata (sanitized on construction)
- Shared
  • name: kebab-case or camelCase identifier ("account-number", "accountNumber").
  • type: "string" | "boolean" | "number" | "array" | "json" | "existing-local-file".
  • description: Unset | str (None when omitted).
  • required: bool.
  • allowable: Unset | AllowableValues | Iterable[str].
  • numeric_range / length_range: Unset | (low, high), inclusive.
- Option only
  • aliases: short or long alternate names ("H", "hn").
  • default: any value. Unset when the option has no default.
  • conflicts_with / absence_implications / implies / implies_one_of: option names.
  • value_implications: mapping of a value to the option names it requires.
  • array_allow_duplicate, promptable, secure, hidden: bool.
  • group: help heading. Unset until the command tree assigns a default.
- Positional only
  • regex: Unset | str the raw value must fully match.

Validation highlights
- Names and aliases are unique within a definition.
- Unknown types are rejected.
- Ranges must be ordered pairs of numbers (lengths: non-negative integers).
- A boolean option cannot be promptable or carry allowable values.

Quick example:
    >>> from imperative.arguments import Option, Positional
    >>> Positional("dataset-name", required=True, description="The data set to list")
    >>> Option("host", "H", description="The z/OSMF host name", promptable=True)
    >>> Option("format", allowable=("json", "yaml"), default="json")
"""
import functools
import operator
import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from .utils import *

TYPES = ("string", "boolean", "number", "array", "json", "existing-local-file")

_NAME = re.compile(r"[A-Za-z][A-Za-z0-9]*(-[A-Za-z0-9]+)*")


class ArgumentType(type):
    """
    Metaclass for argument specs.

    Responsibilities
    - Derive __typename__ from the class name ("AllowableValues" -> "allowable-values").
    - Expose every name listed in __introspectable__ as a read-only property via mirror().
    - Provide __repr__/__rich_repr__ built from __displayable__ (or __introspectable__).
    - Seal classes declared with sealed=True against subclassing.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        if options.get("sealed", False):
            @rename("__init_subclass__")
            def __init_subclass__(cls, **options):  # NOQA: F-841
                raise TypeError(f"type {self.__name__!r} is not an acceptable base type")
            self.__init_subclass__ = classmethod(__init_subclass__)

        return self


def _sanitize_name(cls, name, /, label="name"):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} {label} must be a string")
    elif not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} {label} cannot be empty")
    elif not _NAME.fullmatch(name):
        raise ValueError(f"{cls.__typename__} {label} {name!r} is not a valid option name")
    return name


def _sanitize_names(cls, names, /, label):
    if isinstance(names, str) or not isinstance(names, Iterable):
        raise TypeError(f"{cls.__typename__} {label!r} must be an iterable of names")
    sanitized = []
    for name in names:
        if (name := kebab(_sanitize_name(cls, name, label))) not in sanitized:
            sanitized.append(name)
    return tuple(sanitized)


def _sanitize_range(cls, metadata, key, /, integral=False):
    if (bounds := metadata[key]) is Unset:
        metadata[key] = None
        return
    if isinstance(bounds, str) or not isinstance(bounds, Iterable) or len(bounds := tuple(bounds)) != 2:
        raise TypeError(f"{cls.__typename__} {key!r} must be a (low, high) pair")
    accepted = int if integral else int | float
    if any(not isinstance(bound, accepted) or isinstance(bound, bool) for bound in bounds):
        raise TypeError(f"{cls.__typename__} {key!r} bounds must be {'integers' if integral else 'numbers'}")
    low, high = bounds
    if integral and low < 0:
        raise ValueError(f"{cls.__typename__} {key!r} cannot be negative")
    if low > high:
        raise ValueError(f"{cls.__typename__} {key!r} must be an ordered pair")
    metadata[key] = bounds


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: normalize and validate metadata shared by Option and Positional.

    Mutates metadata in place:
    - type must be one of TYPES.
    - description: Unset → None, otherwise a non-empty string.
    - required: coerced to bool.
    - allowable: Unset → None, iterable of patterns → AllowableValues.
    - numeric_range / length_range: Unset → None, otherwise an ordered pair.

    Raises
    - TypeError: wrong kinds of values.
    - ValueError: empty strings, unknown types, unordered ranges.
    """
    if not isinstance(type := metadata["type"], str):
        raise TypeError(f"{cls.__typename__} 'type' must be a string")
    elif type not in TYPES:
        raise ValueError(f"{cls.__typename__} 'type' must be one of {', '.join(map(repr, TYPES))}")

    if not isinstance(description := metadata["description"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'description' must be a string")
    elif isinstance(description, str) and not (description := description.strip()):
        raise ValueError(f"{cls.__typename__} 'description' cannot be empty")
    metadata["description"] = coalesce(description)

    metadata["required"] = bool(metadata["required"])

    match allowable := metadata["allowable"]:
        case AllowableValues():
            pass
        case UnsetType():
            allowable = None
        case str():
            allowable = AllowableValues(allowable)
        case Iterable():
            allowable = AllowableValues(*allowable)
        case _:
            raise TypeError(f"{cls.__typename__} 'allowable' must be an iterable of patterns")
    if allowable is not None and type == "boolean":
        raise TypeError(f"boolean {cls.__typename__} cannot have 'allowable' values")
    metadata["allowable"] = allowable

    _sanitize_range(cls, metadata, "numeric_range")
    _sanitize_range(cls, metadata, "length_range", integral=True)


def _sanitize_named_metadata(cls, metadata, /):
    """
    Internal: normalize and validate Option-only metadata.

    - aliases: unique, never equal to the name or its camelCase spelling.
    - relation fields (conflicts_with, absence_implications, implies, implies_one_of):
      tuples of kebab-case option names, never naming the option itself.
    - value_implications: Unset → empty mapping, otherwise value → tuple of names.
    - group: Unset stays Unset (the command tree assigns the default heading).
    """
    name = metadata["name"]
    aliases = []
    for alias in metadata["aliases"]:
        if (alias := _sanitize_name(cls, alias, "alias")) in (name, camel(name), *aliases):
            raise ValueError(f"{cls.__typename__} {name!r} cannot repeat the alias {alias!r}")
        aliases.append(alias)
    metadata["aliases"] = tuple(aliases)

    for key in ("conflicts_with", "absence_implications", "implies", "implies_one_of"):
        metadata[key] = _sanitize_names(cls, metadata[key], key)
        if name in metadata[key]:
            raise ValueError(f"{cls.__typename__} {name!r} cannot reference itself in {key!r}")

    if (implications := metadata["value_implications"]) is Unset:
        implications = {}
    elif not isinstance(implications, Mapping):
        raise TypeError(f"{cls.__typename__} 'value_implications' must be a mapping")
    metadata["value_implications"] = {
        str(value): _sanitize_names(cls, names, "value_implications") for value, names in implications.items()
    }

    if not isinstance(group := metadata["group"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'group' must be a string")
    elif isinstance(group, str) and not (group := group.strip()):
        raise ValueError(f"{cls.__typename__} 'group' cannot be empty")
    metadata["group"] = group

    for key in ("array_allow_duplicate", "promptable", "secure", "hidden"):
        metadata[key] = bool(metadata[key])
    if metadata["promptable"] and metadata["type"] == "boolean":
        raise TypeError(f"boolean {cls.__typename__} cannot be promptable")


class AllowableValues(metaclass=ArgumentType, sealed=True):
    """
    Regular expressions a value must match, honoring a case-sensitivity flag.

    Each pattern is anchored on both ends, so AllowableValues("json") accepts
    "json" (and "JSON" when case-insensitive) but not "jsonl".
    """
    __introspectable__ = (
        "values",
        "case_sensitive",
    )

    def __new__(cls, *values, case_sensitive=False):
        if not values:
            raise TypeError(f"{cls.__typename__} must specify at least one value")
        for value in values:
            if not isinstance(value, str):
                raise TypeError(f"{cls.__typename__} values must be strings")
            try:
                re.compile(value)
            except re.error as error:
                raise ValueError(f"{cls.__typename__} value {value!r} is not a valid pattern: {error}") from None
        self = super().__new__(cls)
        self._values = tuple(values)
        self._case_sensitive = bool(case_sensitive)
        return self

    def matches(self, value, /):
        """Return True when the value (every element, for lists) matches one pattern."""
        if isinstance(value, list | tuple):
            return all(map(self.matches, value))
        flags = 0 if self._case_sensitive else re.IGNORECASE
        return any(re.fullmatch(pattern, str(value), flags) for pattern in self._values)

    def to_json(self):
        return {"values": list(self._values), "caseSensitive": self._case_sensitive}


class Option(metaclass=ArgumentType, sealed=True):
    """
    Named argument definition.

    An option is matched on the command line by every spelling of its name:
    --account-number, --accountNumber, and each alias ("-a" for single
    characters, "--acct" otherwise).

    Properties
    - The names listed in __introspectable__ are exposed as read-only attributes.
    - flags: every command line spelling, dashes included.
    - spellings: every name without dashes (used for profile and env lookups).
    """
    __introspectable__ = (
        "name",
        "aliases",
        "type",
        "description",
        "required",
        "default",
        "allowable",
        "conflicts_with",
        "absence_implications",
        "implies",
        "implies_one_of",
        "value_implications",
        "numeric_range",
        "length_range",
        "array_allow_duplicate",
        "promptable",
        "secure",
        "hidden",
        "group",
    )

    __displayable__ = (
        "name",
        "aliases",
        "type",
        "required",
        "default",
        "group",
    )

    def __new__(
            cls,
            name,
            /,
            *aliases,
            type="string",
            description=Unset,
            required=False,
            default=Unset,
            allowable=Unset,
            conflicts_with=(),
            absence_implications=(),
            implies=(),
            implies_one_of=(),
            value_implications=Unset,
            numeric_range=Unset,
            length_range=Unset,
            array_allow_duplicate=True,
            promptable=False,
            secure=False,
            hidden=False,
            group=Unset,
    ):
        source = {
            "type": type,
            "description": description,
            "required": required,
            "default": default,
            "allowable": allowable,
            "conflicts_with": conflicts_with,
            "absence_implications": absence_implications,
            "implies": implies,
            "implies_one_of": implies_one_of,
            "value_implications": value_implications,
            "numeric_range": numeric_range,
            "length_range": length_range,
            "array_allow_duplicate": array_allow_duplicate,
            "promptable": promptable,
            "secure": secure,
            "hidden": hidden,
            "group": group,
        }
        metadata = source | {"name": kebab(_sanitize_name(cls, name)), "aliases": aliases}

        _sanitize_metadata(cls, metadata)
        _sanitize_named_metadata(cls, metadata)

        self = super().__new__(cls)
        self._source = (metadata["name"], metadata["aliases"], MappingProxyType(source))
        for key, value in metadata.items():
            setattr(self, "_" + key, value)
        return self

    @property
    def spellings(self):
        """Every accepted name without dashes, canonical name first."""
        return tuple(dict.fromkeys((self._name, camel(self._name), *self._aliases)))

    @property
    def flags(self):
        """Every accepted command line spelling, canonical flag first."""
        return tuple(map(dashed, self.spellings))

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        name, aliases, source = self._source
        return type(self)(overrides.pop("name", name), *overrides.pop("aliases", aliases), **{**source, **overrides})

    def to_json(self):
        """Definition as embedded in validation errors of the JSON response."""
        document = {
            "name": self._name,
            "aliases": list(self._aliases),
            "type": self._type,
            "description": self._description,
            "required": self._required,
            "group": coalesce(self._group),
        }
        if self._default is not Unset:
            document["defaultValue"] = self._default
        if self._allowable is not None:
            document["allowableValues"] = self._allowable.to_json()
        for key, label in (
                ("conflicts_with", "conflictsWith"),
                ("absence_implications", "absenceImplications"),
                ("implies", "implies"),
                ("implies_one_of", "impliesOneOf"),
        ):
            if values := getattr(self, "_" + key):
                document[label] = list(values)
        if self._numeric_range is not None:
            document["numericValueRange"] = list(self._numeric_range)
        if self._length_range is not None:
            document["stringLengthRange"] = list(self._length_range)
        return document


class Positional(metaclass=ArgumentType, sealed=True):
    """
    Positional argument definition.

    Positionals receive command line tokens in declared order. A positional of
    type "array" must be the last one and receives every remaining token.
    """
    __introspectable__ = (
        "name",
        "type",
        "description",
        "required",
        "regex",
        "allowable",
        "numeric_range",
        "length_range",
    )

    def __new__(
            cls,
            name,
            /,
            *,
            type="string",
            description=Unset,
            required=False,
            regex=Unset,
            allowable=Unset,
            numeric_range=Unset,
            length_range=Unset,
    ):
        metadata = {
            "name": kebab(_sanitize_name(cls, name)),
            "type": type,
            "description": description,
            "required": required,
            "regex": regex,
            "allowable": allowable,
            "numeric_range": numeric_range,
            "length_range": length_range,
        }

        _sanitize_metadata(cls, metadata)

        if metadata["type"] in ("boolean", "json"):
            raise ValueError(f"{cls.__typename__} 'type' cannot be {metadata['type']!r}")

        if not isinstance(regex := metadata["regex"], str | Unset):
            raise TypeError(f"{cls.__typename__} 'regex' must be a string")
        elif isinstance(regex, str):
            try:
                re.compile(regex)
            except re.error as error:
                raise ValueError(f"{cls.__typename__} 'regex' is not a valid pattern: {error}") from None
        metadata["regex"] = coalesce(regex)

        self = super().__new__(cls)
        for key, value in metadata.items():
            setattr(self, "_" + key, value)
        return self

    def to_json(self):
        document = {
            "name": self._name,
            "type": self._type,
            "description": self._description,
            "required": self._required,
        }
        if self._regex is not None:
            document["regex"] = self._regex
        if self._allowable is not None:
            document["allowableValues"] = self._allowable.to_json()
        return document


class PassOn(metaclass=ArgumentType, sealed=True):
    """
    An option a group hands down to every descendant node.

    Parameters
    - option: Option to inherit.
    - ignore_names: node names that do not receive the option.
    - ignore_types: node types ("group", "command") that do not receive it.

    Skipped nodes still relay the option further down the tree. A descendant that
    declares an option with the same name keeps its own definition.
    """
    __introspectable__ = (
        "option",
        "ignore_names",
        "ignore_types",
    )

    def __new__(cls, option, /, *, ignore_names=(), ignore_types=()):
        if not isinstance(option, Option):
            raise TypeError(f"{cls.__typename__} argument must be an option")
        if isinstance(ignore_names, str) or isinstance(ignore_types, str):
            raise TypeError(f"{cls.__typename__} ignore rules must be iterables of strings")
        if unknown := set(ignore_types) - {"group", "command"}:
            raise ValueError(f"{cls.__typename__} cannot ignore unknown node types {sorted(unknown)}")
        self = super().__new__(cls)
        self._option = option
        self._ignore_names = frozenset(ignore_names)
        self._ignore_types = frozenset(ignore_types)
        return self

    def applies(self, node, /):
        """Return True when node receives the option."""
        return node.name not in self._ignore_names and node.type not in self._ignore_types


__all__ = (
    # Public API surface for consumers of imperative.arguments.
    "AllowableValues",
    "Option",
    "Positional",
    "PassOn",
    "TYPES",
)

