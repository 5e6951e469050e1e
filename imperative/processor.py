"""
Imperative command processor: one invocation from argv to exit code.

State machine
    RESOLVING_COMMAND → RESOLVING_PROFILES → MAPPING_ARGUMENTS → VALIDATING_SYNTAX
      → INVOKING_HANDLER → FORMATTING_RESPONSE → DONE
  Any state may move to FAILED: the remaining work is skipped, the failure is
  still formatted (console text or JSON document) and the invocation ends.

Short circuits (exit 0, no handler)
- --help on any node, and a group reached without a subcommand, print help.
- --help-examples on a group prints the examples of its subtree.
- --show-inputs-only on a command prints the censored resolved arguments.

Handlers
- HandlerRegistry maps handler ids to handlers. A command node's handler is
  a registered id, a "package.module:Attribute" or "path/to/file.py:Attribute"
  reference, or the handler itself.
  References are resolved when the processor starts; a node whose handler cannot
  be resolved fails at invocation time with HandlerNotFoundError.
- A handler is a class (instantiated once per invocation) or an instance whose
  process(params) method runs the command, or a plain callable taking params.
  Either may be a coroutine function.
- HandlerExpectedError from a handler is a regular failure. Any other exception,
  raised by the handler (its constructor included) or by an earlier state,
  becomes UnexpectedInternalError, whose cause is shown in diagnostic mode only.

Exit codes
- 0 on success, the handler's code (or 1) on handler failure, 1 otherwise.
"""
import asyncio
import enum
import importlib
import importlib.util
import inspect
import logging
import os.path
import re
import shlex
import sys
import traceback
from collections.abc import Iterable
from typing import NamedTuple

from .commands import JSON, booleanlike
from .config import Context, configure_logging
from .faults import CommandError, HandlerNotFoundError, UnexpectedInternalError
from .help import HelpGenerator
from .mapping import ArgumentMapper
from .profiles import ProfileResolver, ProfileStore
from .response import CommandResponse
from .syntax import SyntaxValidator
from .utils import *

logger = logging.getLogger(__name__)


class State(enum.Enum):
    RESOLVING_COMMAND = "resolving-command"
    RESOLVING_PROFILES = "resolving-profiles"
    MAPPING_ARGUMENTS = "mapping-arguments"
    VALIDATING_SYNTAX = "validating-syntax"
    INVOKING_HANDLER = "invoking-handler"
    FORMATTING_RESPONSE = "formatting-response"
    DONE = "done"
    FAILED = "failed"


class Success(NamedTuple):
    """Outcome of a successful invocation."""
    response: CommandResponse
    node: object = None

    @property
    def exit_code(self):
        return self.response.exit_code


class Failure(NamedTuple):
    """
    Outcome of a failed invocation.

    error is None when the handler marked the response failed without raising.
    state is the state the invocation was in when it failed.
    """
    response: CommandResponse
    error: CommandError | None
    state: State
    node: object = None

    @property
    def exit_code(self):
        return self.response.exit_code


class HandlerParameters(NamedTuple):
    """What a handler receives."""
    arguments: object
    response: CommandResponse
    profiles: object
    positionals: tuple
    definition: object
    argv: tuple


class HandlerRegistry:
    """
    Handler ids to handlers.

    >>> registry = HandlerRegistry()
    >>> @registry.register("files.list")
    ... async def list_files(params): ...
    """

    def __init__(self):
        self._handlers = {}

    def __contains__(self, id, /):
        return id in self._handlers

    def register(self, id, handler=Unset, /):
        """Register handler under id; without a handler, return a decorator."""
        if not isinstance(id, str) or not (id := id.strip()):
            raise TypeError("register() id must be a non-empty string")

        @rename("register")
        def wrapper(handler, /):
            if not callable(handler) and not callable(getattr(handler, "process", None)):
                raise TypeError(f"handler {id!r} must be callable or provide a process() method")
            if id in self._handlers and self._handlers[id] is not handler:
                raise ValueError(f"handler id {id!r} is already registered")
            self._handlers[id] = handler
            return handler

        return wrapper(handler) if handler is not Unset else wrapper

    def resolve(self, reference, /):
        """
        Return the handler a node refers to.

        Raises
        - HandlerNotFoundError: reference is Unset, not registered, or not importable.
        """
        if reference is Unset:
            raise HandlerNotFoundError("no handler is defined for this command",
                                       hint="bind a handler to every command node")
        if not isinstance(reference, str):
            return reference
        if reference in self._handlers:
            return self._handlers[reference]
        module, colon, attributes = reference.rpartition(":")
        if not colon or not module or not attributes:
            raise HandlerNotFoundError(f"handler {reference!r} is not registered", handler=reference,
                                       hint="register it or use a 'package.module:Attribute' reference")
        try:
            handler = _load_module(module)
            for attribute in attributes.split("."):
                handler = getattr(handler, attribute)
        except (ImportError, AttributeError) as error:
            raise HandlerNotFoundError(f"unable to load handler {reference!r}", handler=reference,
                                       cause=error, hint=str(error)) from error
        return handler

    def bind(self, tree, /):
        """
        Resolve the handler of every command node under tree.

        Returns a mapping of node to handler or to the HandlerNotFoundError
        explaining why it cannot run.
        """
        bindings = {}
        for node in tree.walk():
            if node.type != "command":
                continue
            try:
                bindings[node] = self.resolve(node.handler)
            except HandlerNotFoundError as error:
                logger.debug("command %r cannot run: %s", node.route, error.message)
                bindings[node] = HandlerNotFoundError(
                    f"command {node.route!r} cannot run: {error.message}",
                    **(dict(error.options) | {"route": node.route}),
                )
        return bindings


def _load_module(module):
    if not module.endswith(".py"):
        return importlib.import_module(module)
    # Handler modules given by path load under a private name derived from the path
    path = os.path.abspath(module)
    name = "_imperative_handler_" + re.sub(r"\W", "_", path)
    if name in sys.modules:
        return sys.modules[name]
    if not os.path.isfile(path) or (spec := importlib.util.spec_from_file_location(name, path)) is None:
        raise ImportError(f"no handler module at {module!r}")
    loaded = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(loaded)
    sys.modules[name] = loaded
    return loaded


def _tokenize(argv):
    if argv is Unset:
        return sys.argv[1:]
    if isinstance(argv, str):
        return shlex.split(argv)
    if not isinstance(argv, Iterable):
        raise TypeError("argv must be a string or an iterable of strings")
    tokens = []
    for token in argv:
        if not isinstance(token, str):
            raise TypeError("argv must be a string or an iterable of strings")
        tokens.append(token)
    return tokens


class CommandProcessor:
    """
    Run command lines against a command definition tree.

    Parameters
    - tree: root Command node.
    - context: Context of the CLI process.
    - registry: HandlerRegistry for handler ids (a fresh one by default).
    - store: ProfileStore (defaults to the one under context.home).
    - stdout / stderr: output streams.
    - prompt: callable(message, secure=bool) → str used for interactive input.

    A processor is reusable: invocations share nothing but the tree, the store
    and the handler bindings.
    """

    def __init__(self, tree, context, /, *, registry=Unset, store=Unset, stdout=Unset, stderr=Unset, prompt=Unset):
        if tree.parent is not None:
            raise ValueError(f"command processor requires a root node, not {tree.route!r}")
        if not isinstance(context, Context):
            raise TypeError("command processor context must be a context")
        self._tree = tree
        self._context = context
        self._store = store if store is not Unset else ProfileStore(context.home)
        self._stdout = stdout
        self._stderr = stderr
        self._resolver = ProfileResolver(self._store)
        self._mapper = ArgumentMapper(context, prompt)
        self._validator = SyntaxValidator()
        self._helper = HelpGenerator(context)
        self._bindings = coalesce(registry, HandlerRegistry()).bind(tree)

    tree = mirror("tree")
    context = mirror("context")

    def _json_requested(self, tokens):
        for index, token in enumerate(tokens):
            if token == "--":
                break
            flag, assigned, value = token.partition("=")
            if flag in JSON.flags:
                if not assigned and index + 1 < len(tokens) and booleanlike(tokens[index + 1]):
                    assigned, value = "=", tokens[index + 1]
                return not assigned or value.lower() != "false"
        raw = self._context.environ.get(envname(self._context.prefix, JSON.name), "")
        return raw.strip().lower() == "true"

    def _explicit_profiles(self, node, line):
        explicit = {}
        for type in node.profile.types:
            name = line.get(f"{type}-profile")
            if name is None:
                name = self._context.environ.get(envname(self._context.prefix, f"{type}-profile")) or None
            if isinstance(name, str) and name:
                explicit[type] = name
        return explicit

    async def invoke(self, argv=Unset, /):
        """
        Run one command line.

        argv: Unset (sys.argv[1:]), a shell-like string, or an iterable of tokens.

        Returns Success or Failure; errors of the invocation never propagate.
        """
        tokens = _tokenize(argv)
        response = CommandResponse(self._context, json=self._json_requested(tokens),
                                   stdout=self._stdout, stderr=self._stderr)
        state, node, error = State.RESOLVING_COMMAND, None, None

        def advance(target):
            nonlocal state
            logger.debug("%s → %s", state.value, target.value)
            state = target

        try:
            node, remaining = self._tree.resolve(tokens)
            line = self._mapper.parse(node, remaining)

            if line.get("help") is True or (node.type == "group" and line.get("help-examples") is not True):
                response.console.render(self._helper.render(node))
            elif node.type == "group":
                response.console.render(self._helper.examples(node))
            else:
                advance(State.RESOLVING_PROFILES)
                profiles = self._resolver.resolve(node.profile, self._explicit_profiles(node, line))

                advance(State.MAPPING_ARGUMENTS)
                arguments = self._mapper.map(node, line, profiles)

                advance(State.VALIDATING_SYNTAX)
                verdict = self._validator.validate(node, arguments)
                if not verdict.valid:
                    raise verdict.error
                arguments = verdict.arguments

                if arguments.get("show-inputs-only") is True:
                    self._show_inputs(node, arguments, profiles, response)
                else:
                    advance(State.INVOKING_HANDLER)
                    await self._run_handler(node, arguments, profiles, line, tokens, response)
        except CommandError as raised:
            error = raised
            failed, state = state, State.FAILED
            logger.debug("invocation failed while %s: %s", failed.value, raised.message)
            response.fail(raised)
        except Exception as raised:
            error = self._unexpected(f"an unexpected error occurred while {state.value.replace('-', ' ')}", raised)
            failed, state = state, State.FAILED
            logger.debug("invocation failed while %s", failed.value, exc_info=True)
            response.fail(error)

        if state is not State.FAILED:
            advance(State.FORMATTING_RESPONSE)
        response.finish()

        if state is State.FAILED:
            return Failure(response, error, failed, node)
        advance(State.DONE)
        if not response.success:
            return Failure(response, None, State.INVOKING_HANDLER, node)
        return Success(response, node)

    def run(self, argv=Unset, /):
        """Synchronous invoke()."""
        return asyncio.run(self.invoke(argv))

    def _show_inputs(self, node, arguments, profiles, response):
        secure = {*profiles.secure, *(option.name for option in node.options if option.secure)}
        inputs = {
            "commandValues": arguments.censored(secure),
            "profiles": {type: profile.name for type, profile in profiles.profiles.items()},
        }
        response.data.set_obj(inputs)
        response.format.output(inputs, format="object")

    def _unexpected(self, message, error):
        # Called from an except block so the stack is the one of error
        return UnexpectedInternalError(
            message,
            cause=error,
            stack=traceback.format_exc(),
            hint=f"set {self._context.prefix}_DIAGNOSTIC=true for details",
        )

    async def _run_handler(self, node, arguments, profiles, line, tokens, response):
        if isinstance(handler := self._bindings[node], CommandError):
            raise handler
        positionals = tuple(arguments[positional.name] for positional in node.positionals if positional.name in arguments)
        params = HandlerParameters(arguments, response, profiles, positionals, node, tuple(tokens))

        logger.info("running %r", node.route)
        with response.capture():
            stage = "instantiating"
            try:
                if inspect.isclass(handler):
                    handler = handler()
                target = getattr(handler, "process", handler)
                stage = "running"
                if inspect.isawaitable(result := target(params)):
                    await result
            except CommandError:
                raise
            except Exception as error:
                raise self._unexpected(f"an unexpected error occurred while {stage} the command handler", error) from error
            finally:
                response.progress.end_bar()


def invoke(tree, argv=Unset, /, **options):
    """
    Convenience runner: build a context, configure logging, run once.

    Parameters
    - tree: root Command node.
    - argv: Unset (sys.argv[1:]), a shell-like string, or an iterable of tokens.
    - options: context= (default Context.from_environ(tree.name)) plus any
      CommandProcessor keyword argument.

    Returns the exit code.
    """
    if (context := options.pop("context", Unset)) is Unset:
        context = Context.from_environ(tree.name)
    configure_logging(context)
    return CommandProcessor(tree, context, **options).run(argv).exit_code


__all__ = (
    "CommandProcessor",
    "HandlerRegistry",
    "HandlerParameters",
    "State",
    "Success",
    "Failure",
    "invoke",
)
