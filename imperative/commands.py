"""
Imperative command layer: the command definition tree.

What this module provides
- Command: one node of the tree, either a group (has children) or a command
  (bound to a handler). Nodes are built bottom-up and frozen once attached:
  • children are attached at construction and learn their parent,
  • options passed on by ancestors are merged into every node's option list
    when the enclosing group is built (own definitions win over inherited ones),
  • built-in options are appended: --help/-h and --response-format-json/--rfj on
    every node, --help-examples on groups, --show-inputs-only on commands, and one
    --<type>-profile/--<type>-p per profile type the node references.
- Example: a usage example shown in help.
- discover(pattern): collect top-level Command objects from modules matching a
  module glob, for assembling a tree out of separate definition modules.

Core ideas
- Declarative definitions: the tree describes the CLI surface, the processor runs it.
- Immutable after construction: lookups (resolve, lookup, child) never mutate, so a
  tree is safely reused across invocations in long-lived processes.

Quick start
    from imperative import Command, Option, Positional

    tree = Command(
        "zowe",
        description="Manage mainframe resources",
        children=[
            Command(
                "files",
                "zos-files",
                children=[
                    Command(
                        "list",
                        "ls",
                        positionals=[Positional("dataset-name", required=True)],
                        options=[Option("max-length", "max", type="number")],
                        profile={"required": ["zosmf"]},
                        handler="zowe.files.list:ListHandler",
                    ),
                ],
            ),
        ],
    )
    node, tokens = tree.resolve(["files", "ls", "IBMUSER.*"])
"""
import builtins
import fnmatch
import importlib
import inspect
import logging
import pkgutil
import re
from collections.abc import Iterable, Mapping

from .arguments import Option, Positional, PassOn
from .faults import DefinitionError, UnknownCommandError
from .profiles import ProfileSpec
from .utils import *

logger = logging.getLogger(__name__)

GLOBAL_GROUP = "Global Options"
PROFILE_GROUP = "Profile Options"
REQUIRED_GROUP = "Required Options"
DEFAULT_GROUP = "Options"

HELP = Option("help", "h", type="boolean", description="Display help text", group=GLOBAL_GROUP)
JSON = Option(
    "response-format-json",
    "rfj",
    type="boolean",
    description="Produce JSON formatted data from a command",
    group=GLOBAL_GROUP,
)
HELP_EXAMPLES = Option(
    "help-examples",
    type="boolean",
    description="Display examples for all the commands in a group",
    group=GLOBAL_GROUP,
)
SHOW_INPUTS_ONLY = Option(
    "show-inputs-only",
    type="boolean",
    description="Show command inputs and do not run the command",
    group=GLOBAL_GROUP,
)

# Anything that starts like a flag but is a negative number is a value
_NUMBER = re.compile(r"-\d+(\.\d+)?")


def optionlike(token, /):
    """Return True when a command line token names an option."""
    return len(token) > 1 and token.startswith("-") and token != "--" and not _NUMBER.fullmatch(token)


def booleanlike(token, /):
    """Return True when a token spells a boolean value: "true" or "false", in any case."""
    return token.lower() in ("true", "false")


def profile_option(type, /):
    """Build the --<type>-profile option of a profile type."""
    return Option(
        f"{type}-profile",
        f"{type}-p",
        description=f"The name of a ({type}) profile to load for this command execution.",
        group=PROFILE_GROUP,
    )


class CommandType(type):
    """
    Metaclass for definition nodes.

    Responsibilities
    - Derive __typename__ from the class name for messages.
    - Expose every name listed in __introspectable__ as a read-only property via mirror().
    - Provide __repr__/__rich_repr__ limited to __displayable__ for readable diagnostics.
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
            return f"{type(self).__typename__}(%s)" % ", ".join(
                f"{name}={value!r}" for name, value in self.__rich_repr__()
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                if name == "children":
                    yield name, tuple(child.name for child in self.children)
                elif name == "parent":
                    yield name, getattr(self.parent, "name", None)
                else:
                    yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


class Example(metaclass=CommandType):
    """
    A usage example rendered in help.

    Parameters
    - description: what the example does.
    - options: the arguments following the command path (e.g. '"IBMUSER.*" --max 10').
    - prefix: text placed between the command path and the options, if any.
    """
    __introspectable__ = (
        "description",
        "options",
        "prefix",
    )

    def __init__(self, description, /, options="", *, prefix=Unset):
        for label, value in (("description", description), ("options", options)):
            if not isinstance(value, str):
                raise TypeError(f"{type(self).__typename__} {label!r} must be a string")
        if not (description := description.strip()):
            raise ValueError(f"{type(self).__typename__} 'description' cannot be empty")
        if not isinstance(prefix, str | Unset):
            raise TypeError(f"{type(self).__typename__} 'prefix' must be a string")
        self._description = description
        self._options = options.strip()
        self._prefix = coalesce(prefix)

    def render(self, route, /):
        """Return the example command line for a node route."""
        return " ".join(part for part in (route, self._prefix, self._options) if part)


def _sanitize_node(cls, metadata, /):
    """
    Internal: normalize and validate node metadata in place.

    Raises
    - TypeError: wrong kinds of values (options that are not Option, ...).
    - DefinitionError: structural mistakes (group without children, a command with
      children, duplicate names).
    """
    name = metadata["name"]

    aliases = []
    for alias in metadata["aliases"]:
        if not isinstance(alias, str) or not (alias := alias.strip()):
            raise TypeError(f"{cls.__typename__} {name!r} aliases must be non-empty strings")
        if alias == name or alias in aliases:
            raise DefinitionError(f"{cls.__typename__} {name!r} cannot repeat the alias {alias!r}")
        aliases.append(alias)
    metadata["aliases"] = tuple(aliases)

    children = tuple(metadata["children"])
    match metadata["type"]:
        case UnsetType():
            metadata["type"] = "group" if children else "command"
        case "group" | "command":
            pass
        case _:
            raise DefinitionError(f"{cls.__typename__} {name!r} type must be 'group' or 'command'")
    if metadata["type"] == "group":
        if not children:
            raise DefinitionError(f"group {name!r} must have at least one child")
        if metadata["handler"] is not Unset:
            raise DefinitionError(f"group {name!r} cannot have a handler")
    elif children:
        raise DefinitionError(f"command {name!r} cannot have children")

    seen = {}
    for child in children:
        if not isinstance(child, Command):
            raise TypeError(f"{cls.__typename__} {name!r} children must be commands")
        if child.parent is not None:
            raise DefinitionError(f"{child.typeof} {child.name!r} is already attached to {child.parent.name!r}")
        for spelling in (child.name, *child.aliases):
            if (other := seen.setdefault(spelling, child)) is not child:
                raise DefinitionError(
                    f"{child.typeof} {child.name!r} reuses the name {spelling!r} of {other.name!r} under {name!r}"
                )
    metadata["children"] = children

    for key, kind in (("options", Option), ("positionals", Positional), ("pass_on", PassOn), ("examples", Example)):
        if isinstance(values := metadata[key], str) or not isinstance(values, Iterable):
            raise TypeError(f"{cls.__typename__} {name!r} {key!r} must be an iterable")
        values = tuple(values)
        if not all(isinstance(value, kind) for value in values):
            raise TypeError(f"{cls.__typename__} {name!r} {key!r} must contain only {kind.__typename__} objects")
        metadata[key] = values

    names = [option.name for option in metadata["options"]]
    if duplicates := sorted({name for name in names if names.count(name) > 1}):
        raise DefinitionError(f"{cls.__typename__} {name!r} declares duplicate options {duplicates}")

    positionals = metadata["positionals"]
    for index, positional in enumerate(positionals):
        if positional.type == "array" and index != len(positionals) - 1:
            raise DefinitionError(f"array positional {positional.name!r} of {name!r} must be the last one")
        if positional.required and index and not positionals[index - 1].required:
            raise DefinitionError(f"required positional {positional.name!r} of {name!r} follows an optional one")

    match profile := metadata["profile"]:
        case ProfileSpec():
            pass
        case UnsetType() | None:
            profile = ProfileSpec()
        case Mapping():
            profile = ProfileSpec.from_mapping(profile)
        case _:
            raise TypeError(f"{cls.__typename__} {name!r} 'profile' must be a profile spec or a mapping")
    metadata["profile"] = profile

    if not (metadata["handler"] is Unset or isinstance(metadata["handler"], str) or callable(metadata["handler"])):
        raise TypeError(f"{cls.__typename__} {name!r} 'handler' must be a handler id or a callable")

    for key in ("must_specify_one", "only_one_of"):
        if isinstance(values := metadata[key], str) or not isinstance(values, Iterable):
            raise TypeError(f"{cls.__typename__} {name!r} {key!r} must be an iterable of option names")
        metadata[key] = tuple(map(kebab, values))

    for key in ("hidden", "syntax_throw"):
        metadata[key] = bool(metadata[key])

    for key in ("description", "summary"):
        if not isinstance(value := metadata[key], str | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} {key!r} must be a string")
        metadata[key] = coalesce(value.strip() if value else value)


def _merge_options(node, inherited, /):
    """
    Compute the flattened option list of node and its whole subtree.

    Order: inherited options, then own options (replacing inherited ones of the same
    name), then built-in options that are not already defined. Options without a
    group land in "Required Options" or "Options".
    """
    merged = {}
    for passon in inherited:
        if passon.applies(node):
            merged[passon.option.name] = passon.option
    for option in node._declared:
        merged[option.name] = option

    automatic = [HELP, JSON]
    automatic.append(HELP_EXAMPLES if node.type == "group" else SHOW_INPUTS_ONLY)
    automatic.extend(map(profile_option, node.profile.types))
    for option in automatic:
        merged.setdefault(option.name, option)

    options, flags = [], {}
    for option in merged.values():
        if option.group is Unset:
            option = option.__replace__(group=REQUIRED_GROUP if option.required else DEFAULT_GROUP)
        for flag in option.flags:
            if (other := flags.setdefault(flag, option.name)) != option.name:
                raise DefinitionError(f"{node.typeof} {node.name!r} options {other!r} and {option.name!r} share {flag}")
        options.append(option)

    node._options = tuple(options)
    node._flags = flags
    for child in node._children:
        _merge_options(child, (*inherited, *node._pass_on))


class Command(metaclass=CommandType):
    """
    One node of the command definition tree.

    Responsibilities
    - Introspection: metadata is exposed as read-only properties.
    - Composition: groups own an ordered tuple of children; every child knows its parent.
    - Lookup: resolve() walks a token path, lookup() finds options by any spelling.

    Notes
    - options holds the merged option list (inherited, own and built-in options);
      declared holds only the options given to this node.
    - A command without a handler builds fine; invoking it fails at run time.
    """
    __introspectable__ = (
        "name",
        "aliases",
        "type",
        "description",
        "summary",
        "options",
        "declared",
        "positionals",
        "profile",
        "children",
        "parent",
        "handler",
        "examples",
        "pass_on",
        "must_specify_one",
        "only_one_of",
        "hidden",
        "syntax_throw",
    )

    __displayable__ = (
        "name",
        "aliases",
        "type",
        "handler",
        "parent",
        "children",
    )

    def __init__(
            self,
            name,
            /,
            *aliases,
            type=Unset,
            description=Unset,
            summary=Unset,
            options=(),
            positionals=(),
            profile=Unset,
            children=(),
            handler=Unset,
            examples=(),
            pass_on=(),
            must_specify_one=(),
            only_one_of=(),
            hidden=False,
            syntax_throw=False,
    ):
        """
        Build a node and attach its children.

        Parameters
        - name, *aliases: tokens selecting this node on the command line.
        - type: "group" | "command". Defaults to "group" when children are given.
        - description / summary: help texts (summary is the one-liner in tables).
        - options / positionals: Option and Positional definitions.
        - profile: ProfileSpec or {"required": [...], "optional": [...]}.
        - children: Command nodes (groups only).
        - handler: handler id ("package.module:Handler" or a registry key) or a callable.
        - examples: Example objects.
        - pass_on: PassOn objects handed down to every descendant.
        - must_specify_one / only_one_of: option names constrained as a set.
        - hidden: omit from help listings.
        - syntax_throw: raise validation errors instead of returning them (tests).
        """
        if not isinstance(name, str):
            raise TypeError(f"{builtins.type(self).__typename__} name must be a string")
        elif not (name := name.strip()) or optionlike(name) or any(char.isspace() for char in name):
            raise ValueError(f"{builtins.type(self).__typename__} name {name!r} is not a valid command name")

        metadata = {
            "name": name,
            "aliases": aliases,
            "type": type,
            "description": description,
            "summary": summary,
            "options": options,
            "positionals": positionals,
            "profile": profile,
            "children": children,
            "handler": handler,
            "examples": examples,
            "pass_on": pass_on,
            "must_specify_one": must_specify_one,
            "only_one_of": only_one_of,
            "hidden": hidden,
            "syntax_throw": syntax_throw,
        }
        _sanitize_node(builtins.type(self), metadata)

        for key, value in metadata.items():
            setattr(self, "_" + key, value)
        self._declared = self._options
        self._parent = None
        for child in self._children:
            child._parent = self

        _merge_options(self, ())

    @property
    def typeof(self):
        """Human label of the node kind: "group" or "command"."""
        return self._type

    @property
    def root(self):
        """Return the topmost node of the tree."""
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def path(self):
        """Return the nodes from the root down to this one."""
        path = [node := self]
        while node.parent is not None:
            path.append(node := node.parent)
        return tuple(reversed(path))

    @property
    def route(self):
        """Return the command line selecting this node, e.g. "zowe files list"."""
        return " ".join(node.name for node in self.path)

    def child(self, token, /):
        """Return the child selected by token (name or alias), or None."""
        for child in self._children:
            if token == child.name or token in child.aliases:
                return child
        return None

    def lookup(self, flag, /):
        """
        Return the option spelled by flag ("--host", "-H", "--hostName=x"), or None.
        """
        flag, _, _ = flag.partition("=")
        try:
            name = self._flags[flag]
        except KeyError:
            return None
        return next(option for option in self._options if option.name == name)

    def option(self, name, /):
        """Return the merged option called name (any spelling without dashes), or None."""
        for option in self._options:
            if name in option.spellings:
                return option
        return None

    def walk(self):
        """Yield this node and every descendant, depth-first, in declared order."""
        yield self
        for child in self._children:
            yield from child.walk()

    def resolve(self, tokens, /):
        """
        Walk the tree along the command tokens.

        Tokens naming options (and the values following them, only "true" or "false"
        after a boolean option) are skipped while walking, so options may appear
        before the subcommand names.
        Everything after "--" is left untouched.

        Returns
        - (node, remaining): the terminal node and every unconsumed token, in order.

        Raises
        - UnknownCommandError: a group receives a token that names no child.
        """
        node, remaining = self, []
        tokens = list(tokens)
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if token == "--":
                remaining.extend(tokens[index - 1:])
                break
            if optionlike(token):
                remaining.append(token)
                option = node.lookup(token)
                if option is not None and option.type == "boolean" and "=" not in token:
                    if index < len(tokens) and booleanlike(tokens[index]):
                        remaining.append(tokens[index])
                        index += 1
                elif option is not None and "=" not in token:
                    while index < len(tokens) and not optionlike(tokens[index]):
                        remaining.append(tokens[index])
                        index += 1
                        if option.type != "array":
                            break
                continue
            if node.type == "group":
                if (child := node.child(token)) is None:
                    candidates = [spelling for child in node.children for spelling in (child.name, *child.aliases)]
                    raise UnknownCommandError(
                        f"unknown command {token!r} for {node.route!r}",
                        token=token,
                        route=node.route,
                        suggestions=suggest(token, candidates),
                    )
                node = child
                continue
            remaining.append(token)
        logger.debug("resolved %r to %r", tokens, node.route)
        return node, tuple(remaining)


def discover(pattern, /):
    """
    Collect top-level Command objects from the modules matching a module glob.

    pattern
    - dot-separated module path whose segments may use '*', '?' and '[...]'
      (fnmatch rules; '*' also spans dots), e.g. "app.definitions.*".
    - must start with at least one concrete package segment.

    Returns
    - tuple of parentless Command objects in module order, then attribute name order.
      A node reachable from several modules appears once.
    """
    if not isinstance(pattern, str) or not (pattern := pattern.strip()):
        raise TypeError("discover() argument must be a non-empty string")

    prefix = []
    for segment in pattern.split("."):
        if set(segment) & set("*?[]"):
            break
        prefix.append(segment)
    if not prefix:
        raise ValueError("discover() pattern must start with a concrete package segment")

    try:
        package = importlib.import_module(root := ".".join(prefix))
    except ImportError:
        raise TypeError(f"unable to import module {root!r}") from None

    names = [root]
    if hasattr(package, "__path__"):
        names.extend(metadata.name for metadata in pkgutil.walk_packages(package.__path__, root + "."))

    found = []
    for name in sorted(name for name in names if fnmatch.fnmatchcase(name, pattern)):
        for _, object in inspect.getmembers(importlib.import_module(name), lambda x: isinstance(x, Command)):
            if object.parent is None and object not in found:
                found.append(object)
    return tuple(found)


__all__ = (
    # Public API surface for consumers of imperative.commands.
    "Command",
    "Example",
    "discover",
    "optionlike",
    "booleanlike",
    "profile_option",
    "GLOBAL_GROUP",
    "PROFILE_GROUP",
    "REQUIRED_GROUP",
    "DEFAULT_GROUP",
)

# Not part of the public API
del CommandType
