"""
Processor module behavioral tests (end-to-end invocations).

Scope
- Validate the whole pipeline: routing, profiles, mapping, validation, handler
  invocation and response formatting.
- Validate short circuits (help, help examples, show inputs only).
- Validate failure reporting: exit codes, states, single rendering.

Conventions
- Test method names follow CamelCase per project convention.
- Trees, registries and stores are rebuilt per test.
"""

from __future__ import annotations

import io
import json
import logging
import os
import tempfile
import unittest
from unittest import IsolatedAsyncioTestCase, TestCase

from imperative import (
    Command,
    CommandProcessor,
    Context,
    Example,
    Failure,
    HandlerExpectedError,
    HandlerNotFoundError,
    HandlerRegistry,
    Option,
    Positional,
    ProfileNotFoundError,
    ProfileStore,
    State,
    Success,
    UnexpectedInternalError,
    UnknownCommandError,
    ValidationError,
    invoke,
)
from imperative.utils import Unset

STORE = {
    "defaults": {"sweets": "s1"},
    "profiles": {"sweets": {"s1": {"flavor": "sweet"}, "s2": {"flavor": "tart"}}},
}


class Klass:
    """Handler class: instantiated once per invocation."""
    instances = 0

    def __init__(self):
        type(self).instances += 1

    async def process(self, params):
        params.response.data.set_obj({"instances": type(self).instances})


class Broken:
    """Handler class whose constructor fails."""

    def __init__(self):
        raise RuntimeError("constructor failed")

    def process(self, params):
        pass


def build(calls):
    registry = HandlerRegistry()

    @registry.register("choose")
    async def choose(params):
        calls.append(params)
        params.response.console.log("chose %s", params.arguments["color"])
        params.response.data.set_obj({"color": params.arguments["color"], "flavor": params.arguments["flavor"]})

    @registry.register("echo")
    async def echo(params):
        params.response.data.set_obj(dict(params.arguments))

    @registry.register("json-handler")
    async def json_handler(params):
        print("incidental")
        params.response.data.set_message("done")
        params.response.data.set_obj({"x": 1})

    def explode(params):
        raise RuntimeError("kaboom")

    async def expected(params):
        raise HandlerExpectedError("not today", exit_code=4)

    async def quietly_failed(params):
        params.response.failed()

    tree = Command(
        "demo",
        children=[
            Command(
                "ice-cream",
                children=[
                    Command(
                        "choose",
                        options=[Option("color", required=True), Option("flavor", default="mild")],
                        profile={"optional": ["sweets"]},
                        handler="choose",
                        examples=[Example("Choose a red one", "--color red")],
                    ),
                ],
            ),
            Command("invalid", children=[Command("no-handler")]),
            Command("json", handler="json-handler"),
            Command("explode", handler=explode),
            Command("expected", handler=expected),
            Command("quiet", handler=quietly_failed),
            Command("klass", handler=Klass),
            Command("broken", handler=Broken),
            Command("connect", options=[Option("host", required=True, promptable=True)], handler="echo"),
            Command("toggle", options=[Option("force", type="boolean")], handler="echo"),
            Command("show", positionals=[Positional("dataset", required=True)], handler="echo"),
            Command("imported", handler="json:dumps"),
            Command("missing", handler="no_such_module_anywhere:handler"),
        ],
    )
    return tree, registry


class ProcessorCase(IsolatedAsyncioTestCase):

    def setUp(self):
        self.calls = []
        self.stdout, self.stderr = io.StringIO(), io.StringIO()

    def processor(self, environ={}, store=STORE, prompt=Unset, **options):
        tree, registry = build(self.calls)
        return CommandProcessor(
            tree,
            Context("demo", environ=environ, **options),
            registry=registry,
            store=ProfileStore.from_mapping(store),
            stdout=self.stdout,
            stderr=self.stderr,
            prompt=prompt,
        )


class TestPrecedence(ProcessorCase):

    async def testCommandLineWins(self):
        result = await self.processor({"DEMO_OPT_FLAVOR": "bold"}).invoke(
            ["ice-cream", "choose", "--color", "red", "--flavor", "tart"]
        )
        self.assertIsInstance(result, Success)
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.response.result, {"color": "red", "flavor": "tart"})
        self.assertEqual(self.stdout.getvalue(), "chose red\n")

    async def testEnvironmentOverProfile(self):
        result = await self.processor({"DEMO_OPT_FLAVOR": "bold"}).invoke("ice-cream choose --color red")
        self.assertEqual(result.response.result["flavor"], "bold")

    async def testDefaultProfile(self):
        result = await self.processor().invoke("ice-cream choose --color red")
        self.assertEqual(result.response.result["flavor"], "sweet")

    async def testExplicitProfile(self):
        result = await self.processor().invoke("ice-cream choose --color red --sweets-profile s2")
        self.assertEqual(result.response.result["flavor"], "tart")

    async def testExplicitProfileFromEnvironment(self):
        result = await self.processor({"DEMO_OPT_SWEETS_PROFILE": "s2"}).invoke("ice-cream choose --color red")
        self.assertEqual(result.response.result["flavor"], "tart")

    async def testDefinitionDefault(self):
        result = await self.processor(store={}).invoke("ice-cream choose --color red")
        self.assertEqual(result.response.result["flavor"], "mild")

    async def testPositionalFromEnvironment(self):
        result = await self.processor({"DEMO_OPT_DATASET": "A.B"}).invoke("show")
        self.assertIsInstance(result, Success)
        self.assertEqual(result.response.result["dataset"], "A.B")

    async def testSpacedBooleanValue(self):
        result = await self.processor().invoke(["toggle", "--force", "false"])
        self.assertIsInstance(result, Success)
        self.assertIs(result.response.result["force"], False)

    async def testHandlerReceivesParameters(self):
        await self.processor().invoke(["ice-cream", "choose", "--color", "red"])
        params, = self.calls
        self.assertEqual(params.definition.route, "demo ice-cream choose")
        self.assertEqual(params.profiles.get_profile("sweets").name, "s1")
        self.assertEqual(params.argv, ("ice-cream", "choose", "--color", "red"))
        self.assertEqual(params.positionals, ())


class TestFailures(ProcessorCase):

    async def testMissingRequiredOption(self):
        result = await self.processor().invoke("ice-cream choose")
        self.assertIsInstance(result, Failure)
        self.assertIsInstance(result.error, ValidationError)
        self.assertEqual(result.error.option, "color")
        self.assertEqual(result.exit_code, 1)
        self.assertIs(result.state, State.VALIDATING_SYNTAX)
        self.assertIn("--color", self.stderr.getvalue())
        self.assertEqual(self.calls, [])

    async def testCommandWithoutHandler(self):
        result = await self.processor().invoke("invalid no-handler")
        self.assertIsInstance(result.error, HandlerNotFoundError)
        self.assertEqual(result.exit_code, 1)
        self.assertIs(result.state, State.INVOKING_HANDLER)
        self.assertIn("no-handler", self.stderr.getvalue())

    def testMissingHandlersAreNotLoggedAsWarnings(self):
        with self.assertNoLogs("imperative", level="WARNING"):
            self.processor()

    async def testUnimportableHandler(self):
        result = await self.processor().invoke("missing")
        self.assertIsInstance(result.error, HandlerNotFoundError)

    async def testUnknownCommand(self):
        result = await self.processor().invoke("ice-creme")
        self.assertIsInstance(result.error, UnknownCommandError)
        self.assertIs(result.state, State.RESOLVING_COMMAND)
        self.assertIn("did you mean 'ice-cream'?", self.stderr.getvalue())

    async def testMissingExplicitProfile(self):
        result = await self.processor().invoke("ice-cream choose --color red --sweets-p s9")
        self.assertIsInstance(result.error, ProfileNotFoundError)
        self.assertIs(result.state, State.RESOLVING_PROFILES)

    async def testUnexpectedHandlerError(self):
        result = await self.processor().invoke("explode")
        self.assertIsInstance(result.error, UnexpectedInternalError)
        self.assertIsInstance(result.error.options["cause"], RuntimeError)
        self.assertEqual(result.exit_code, 1)
        self.assertNotIn("kaboom", self.stderr.getvalue())

    async def testUnexpectedHandlerErrorInDiagnosticMode(self):
        await self.processor(diagnostic=True).invoke("explode")
        self.assertIn("RuntimeError: kaboom", self.stderr.getvalue())

    async def testHandlerConstructorError(self):
        result = await self.processor().invoke("broken")
        self.assertIsInstance(result, Failure)
        self.assertIsInstance(result.error, UnexpectedInternalError)
        self.assertIsInstance(result.error.options["cause"], RuntimeError)
        self.assertIs(result.state, State.INVOKING_HANDLER)
        self.assertEqual(result.exit_code, 1)
        self.assertIn("instantiating the command handler", self.stderr.getvalue())

    async def testErrorBeforeHandler(self):
        def prompt(message, secure=False):
            raise EOFError()

        result = await self.processor(prompt=prompt, interactive=True).invoke("connect")
        self.assertIsInstance(result, Failure)
        self.assertIsInstance(result.error, UnexpectedInternalError)
        self.assertIsInstance(result.error.options["cause"], EOFError)
        self.assertIs(result.state, State.MAPPING_ARGUMENTS)
        self.assertEqual(result.exit_code, 1)
        self.assertIn("mapping arguments", self.stderr.getvalue())

    async def testErrorBeforeHandlerInJsonMode(self):
        def prompt(message, secure=False):
            raise EOFError()

        await self.processor(prompt=prompt, interactive=True).invoke("connect --rfj")
        document = json.loads(self.stdout.getvalue())
        self.assertFalse(document["success"])
        self.assertEqual(document["exitCode"], 1)

    async def testExpectedHandlerError(self):
        result = await self.processor().invoke("expected")
        self.assertIsInstance(result.error, HandlerExpectedError)
        self.assertEqual(result.exit_code, 4)
        self.assertEqual(self.stderr.getvalue().count("not today"), 1)

    async def testHandlerMarkedFailure(self):
        result = await self.processor().invoke("quiet")
        self.assertIsInstance(result, Failure)
        self.assertIsNone(result.error)
        self.assertEqual(result.exit_code, 1)


class TestJson(ProcessorCase):

    async def testSingleDocument(self):
        result = await self.processor().invoke("json --rfj")
        self.assertEqual(result.exit_code, 0)
        document = json.loads(self.stdout.getvalue())
        self.assertTrue(document["success"])
        self.assertEqual(document["message"], "done")
        self.assertEqual(document["data"], {"x": 1})
        self.assertEqual(document["stdout"], "incidental\n")

    async def testFailureDocument(self):
        result = await self.processor().invoke(["ice-cream", "choose", "--response-format-json"])
        self.assertEqual(result.exit_code, 1)
        document = json.loads(self.stdout.getvalue())
        self.assertFalse(document["success"])
        self.assertEqual(document["exitCode"], 1)
        self.assertEqual(document["error"]["code"], 11401)
        self.assertEqual(document["error"]["definition"]["name"], "color")
        self.assertEqual(self.stderr.getvalue(), "")

    async def testRoutingFailureDocument(self):
        await self.processor().invoke("--rfj ice-creme")
        document = json.loads(self.stdout.getvalue())
        self.assertEqual(document["error"]["code"], 11101)

    async def testJsonFlagWithFalseValue(self):
        result = await self.processor().invoke("json --rfj false")
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(self.stdout.getvalue(), "")

    async def testJsonFromEnvironment(self):
        await self.processor({"DEMO_OPT_RESPONSE_FORMAT_JSON": "true"}).invoke("json")
        self.assertEqual(json.loads(self.stdout.getvalue())["data"], {"x": 1})


class TestShortCircuits(ProcessorCase):

    async def testHelp(self):
        result = await self.processor().invoke("ice-cream choose --help")
        self.assertIsInstance(result, Success)
        output = self.stdout.getvalue()
        self.assertIn("usage: demo ice-cream choose [options]", output)
        self.assertIn("Required Options", output)
        self.assertIn("--color", output)
        self.assertIn("$ demo ice-cream choose --color red", output)
        self.assertEqual(self.calls, [])

    async def testGroupWithoutSubcommandShowsHelp(self):
        result = await self.processor().invoke("ice-cream")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("choose", self.stdout.getvalue())

    async def testHelpExamples(self):
        result = await self.processor().invoke("--help-examples")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Choose a red one", self.stdout.getvalue())

    async def testShowInputsOnly(self):
        result = await self.processor().invoke("ice-cream choose --color red --show-inputs-only")
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(self.calls, [])
        self.assertEqual(result.response.result["commandValues"]["color"], "red")
        self.assertEqual(result.response.result["profiles"], {"sweets": "s1"})
        self.assertIn("color: red", self.stdout.getvalue())


class TestHandlers(ProcessorCase):

    async def testClassHandlerInstantiatedPerInvocation(self):
        processor = self.processor()
        before = Klass.instances
        await processor.invoke("klass")
        result = await processor.invoke("klass")
        self.assertEqual(result.response.result, {"instances": before + 2})

    async def testProcessorIsReusable(self):
        processor = self.processor()
        first = await processor.invoke("ice-cream choose --color red")
        second = await processor.invoke("ice-cream choose --color red")
        self.assertEqual(first.response.result, second.response.result)

    def testRegistryRejectsDuplicates(self):
        registry = HandlerRegistry()
        registry.register("x", print)
        with self.assertRaises(ValueError):
            registry.register("x", len)
        self.assertIn("x", registry)

    def testRegistryResolvesReferences(self):
        registry = HandlerRegistry()
        self.assertIs(registry.resolve("json:dumps"), json.dumps)
        with self.assertRaises(HandlerNotFoundError):
            registry.resolve("unregistered")

    def testRegistryLoadsHandlerFiles(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "handlers.py")
            with open(path, "w", encoding="utf-8") as stream:
                stream.write("def handler(params):\n    params.response.data.set_obj({'from': 'file'})\n")
            handler = HandlerRegistry().resolve(f"{path}:handler")
            with self.assertRaises(HandlerNotFoundError):
                HandlerRegistry().resolve(os.path.join(directory, "missing.py") + ":handler")
        self.assertEqual(handler.__name__, "handler")

    def testRootRequired(self):
        tree, registry = build([])
        with self.assertRaises(ValueError):
            CommandProcessor(tree.child("ice-cream"), Context("demo"), registry=registry)


class TestSynchronousEntry(TestCase):

    def tearDown(self):
        logger = logging.getLogger("imperative")
        for handler in list(logger.handlers):
            if getattr(handler, "_imperative", False):
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def testRun(self):
        tree, registry = build([])
        stdout = io.StringIO()
        processor = CommandProcessor(
            tree,
            Context("demo"),
            registry=registry,
            store=ProfileStore.from_mapping({}),
            stdout=stdout,
            stderr=io.StringIO(),
        )
        self.assertEqual(processor.run(["ice-cream", "choose", "--color", "red"]).exit_code, 0)

    def testInvokeReturnsExitCode(self):
        tree, registry = build([])
        options = {
            "context": Context("demo"),
            "registry": registry,
            "store": ProfileStore.from_mapping({}),
            "stdout": io.StringIO(),
            "stderr": io.StringIO(),
        }
        self.assertEqual(invoke(tree, "ice-cream choose --color red", **options), 0)
        tree, registry = build([])
        self.assertEqual(invoke(tree, "ice-cream choose", **(options | {"registry": registry})), 1)


if __name__ == "__main__":
    unittest.main()
