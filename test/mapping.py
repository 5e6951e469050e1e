"""
Mapping module behavioral tests (parsing, layering, positionals, prompting).

Scope
- Validate parse(): option spellings, inline values, booleans, arrays, repeats.
- Validate map(): precedence default < profile < environment < command line,
  environment coercion, array concatenation, positional assignment.
- Validate prompting through an injected prompt callable.

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import unittest
from unittest import TestCase

from imperative import (
    ArgumentMapper,
    Command,
    Context,
    LoadedProfiles,
    Option,
    Positional,
    ResolvedArguments,
    TooManyPositionalsError,
    UnknownOptionError,
)
from imperative.mapping import COMMAND_LINE, DEFAULT, ENVIRONMENT, PROFILE, PROMPT


def build():
    return Command(
        "choose",
        options=[
            Option("color", required=True),
            Option("flavor", default="mild"),
            Option("count", type="number"),
            Option("tags", type="array"),
            Option("dry-run", type="boolean"),
            Option("account-number"),
            Option("password", promptable=True),
        ],
        positionals=[Positional("first"), Positional("rest", type="array")],
        handler=print,
    )


class Prompter:

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def __call__(self, message, secure=False):
        self.calls.append((message, secure))
        return self.answer


def resolve(argv, environ={}, profiles=LoadedProfiles(), **options):
    node = build()
    mapper = ArgumentMapper(Context("demo", environ=environ, **options.pop("context", {})), **options)
    return mapper.map(node, mapper.parse(node, argv), profiles)


class TestParse(TestCase):

    def setUp(self):
        self.node = build()
        self.mapper = ArgumentMapper(Context("demo"))

    def parse(self, *tokens):
        return self.mapper.parse(self.node, tokens)

    def testSeparateAndInlineValues(self):
        self.assertEqual(self.parse("--color", "red").get("color"), "red")
        self.assertEqual(self.parse("--color=red").get("color"), "red")

    def testCamelCaseSpelling(self):
        self.assertEqual(self.parse("--accountNumber", "42").get("account-number"), "42")

    def testBooleans(self):
        self.assertIs(self.parse("--dry-run").get("dry-run"), True)
        self.assertIs(self.parse("--dry-run=false").get("dry-run"), False)
        self.assertIs(self.parse("--dry-run=TRUE").get("dry-run"), True)

    def testBooleanValueAfterFlag(self):
        self.assertIs(self.parse("--dry-run", "false").get("dry-run"), False)
        self.assertIs(self.parse("--dry-run", "True").get("dry-run"), True)
        line = self.parse("--dry-run", "a")
        self.assertIs(line.get("dry-run"), True)
        self.assertEqual(line.positionals, ("a",))

    def testArraysAccumulate(self):
        line = self.parse("--tags", "a", "b", "--color", "red", "--tags", "c")
        self.assertEqual(line.get("tags"), ["a", "b", "c"])
        self.assertEqual(line.get("color"), "red")

    def testRepeatedOptionKeepsEveryValue(self):
        self.assertEqual(self.parse("--color", "red", "--color", "blue").get("color"), ["red", "blue"])

    def testMissingValueIsEmpty(self):
        self.assertEqual(self.parse("--color").get("color"), "")
        self.assertEqual(self.parse("--color", "--dry-run").get("color"), "")

    def testNegativeNumberIsAValue(self):
        self.assertEqual(self.parse("--count", "-5").get("count"), "-5")

    def testPositionalsAndDoubleDash(self):
        line = self.parse("a", "--color", "red", "--", "--dry-run")
        self.assertEqual(line.positionals, ("a", "--dry-run"))
        self.assertNotIn("dry-run", line)

    def testUnknownOptionSuggests(self):
        with self.assertRaises(UnknownOptionError) as context:
            self.parse("--colr", "red")
        self.assertIn("--color", context.exception.options["suggestions"])
        self.assertIn("did you mean", context.exception.hint)


class TestMap(TestCase):

    def testDefaultValue(self):
        arguments = resolve(["--color", "red"])
        self.assertEqual(arguments["flavor"], "mild")
        self.assertEqual(arguments.origin("flavor"), DEFAULT)
        self.assertFalse(arguments.supplied("flavor"))

    def testProfileOverridesDefault(self):
        arguments = resolve([], profiles=LoadedProfiles({"flavor": "sweet"}))
        self.assertEqual(arguments["flavor"], "sweet")
        self.assertEqual(arguments.origin("flavor"), PROFILE)

    def testEnvironmentOverridesProfile(self):
        arguments = resolve([], {"DEMO_OPT_FLAVOR": "bold"}, LoadedProfiles({"flavor": "sweet"}))
        self.assertEqual(arguments["flavor"], "bold")
        self.assertEqual(arguments.origin("flavor"), ENVIRONMENT)

    def testCommandLineOverridesEverything(self):
        arguments = resolve(["--flavor", "tart"], {"DEMO_OPT_FLAVOR": "bold"}, LoadedProfiles({"flavor": "sweet"}))
        self.assertEqual(arguments["flavor"], "tart")
        self.assertEqual(arguments.origin("flavor"), COMMAND_LINE)

    def testAbsentOptionsAreOmitted(self):
        arguments = resolve(["--color", "red"])
        self.assertNotIn("count", arguments)
        self.assertIsNone(arguments.origin("count"))

    def testEnvironmentCoercion(self):
        arguments = resolve([], {
            "DEMO_OPT_COUNT": "5",
            "DEMO_OPT_DRY_RUN": "TRUE",
            "DEMO_OPT_TAGS": 'x "y z"',
            "DEMO_OPT_ACCOUNT_NUMBER": "0042",
        })
        self.assertEqual(arguments["count"], 5)
        self.assertIs(arguments["dry-run"], True)
        self.assertEqual(arguments["tags"], ["x", "y z"])
        self.assertEqual(arguments["account-number"], "0042")

    def testArraysConcatenateAcrossProfileAndEnvironment(self):
        profiles = LoadedProfiles({"tags": ["p"]})
        self.assertEqual(resolve([], {"DEMO_OPT_TAGS": "e"}, profiles)["tags"], ["p", "e"])
        self.assertEqual(resolve(["--tags", "c"], {"DEMO_OPT_TAGS": "e"}, profiles)["tags"], ["c"])

    def testCamelCaseLookup(self):
        arguments = resolve(["--account-number", "42"])
        self.assertEqual(arguments["accountNumber"], "42")
        self.assertIn("accountNumber", arguments)
        self.assertEqual(arguments.origin("accountNumber"), COMMAND_LINE)

    def testPositionalsInDeclaredOrder(self):
        arguments = resolve(["a", "b", "c"])
        self.assertEqual(arguments["first"], "a")
        self.assertEqual(arguments["rest"], ["b", "c"])

    def testPositionalsFromEnvironment(self):
        arguments = resolve([], {"DEMO_OPT_FIRST": "a", "DEMO_OPT_REST": "b c"})
        self.assertEqual(arguments["first"], "a")
        self.assertEqual(arguments["rest"], ["b", "c"])
        self.assertEqual(arguments.origin("first"), ENVIRONMENT)

    def testPositionalsFromProfiles(self):
        profiles = LoadedProfiles({"first": "p", "rest": "q"})
        arguments = resolve([], profiles=profiles)
        self.assertEqual(arguments["first"], "p")
        self.assertEqual(arguments["rest"], ["q"])
        self.assertEqual(arguments.origin("first"), PROFILE)
        arguments = resolve(["c"], {"DEMO_OPT_FIRST": "a"}, profiles)
        self.assertEqual(arguments["first"], "c")
        self.assertEqual(arguments.origin("first"), COMMAND_LINE)

    def testTooManyPositionals(self):
        node = Command("one", positionals=[Positional("only")], handler=print)
        mapper = ArgumentMapper(Context("demo"))
        with self.assertRaises(TooManyPositionalsError) as context:
            mapper.map(node, mapper.parse(node, ["a", "b"]))
        self.assertEqual(context.exception.options["unexpected"], ["b"])

    def testResolvedArgumentsAreReadOnly(self):
        arguments = resolve(["--color", "red"])
        with self.assertRaises(TypeError):
            arguments["color"] = "blue"  # NOQA

    def testMappingIsRepeatable(self):
        argv = ["--color", "red", "a"]
        self.assertEqual(dict(resolve(argv)), dict(resolve(argv)))

    def testCensoredArguments(self):
        arguments = ResolvedArguments({"password": "x", "token": "y", "host": "z"})
        self.assertEqual(arguments.censored({"token"}), {"password": "****", "token": "****", "host": "z"})


class TestPrompting(TestCase):

    def testPromptPhraseForcesSecurePrompt(self):
        prompter = Prompter("hunter2")
        arguments = resolve(["--password", "PROMPT*"], prompt=prompter)
        self.assertEqual(arguments["password"], "hunter2")
        self.assertEqual(arguments.origin("password"), PROMPT)
        self.assertEqual(prompter.calls, [('Please enter "password"', True)])

    def testPromptPhraseForPlainOption(self):
        prompter = Prompter("7")
        arguments = resolve(["--count", "PROMPT*"], prompt=prompter)
        self.assertEqual(arguments["count"], 7)
        self.assertEqual(prompter.calls, [('Please enter "count"', False)])

    def testInteractiveMissingRequiredPromptable(self):
        node = Command("login", options=[Option("host", required=True, promptable=True)], handler=print)
        prompter = Prompter("example.com")
        mapper = ArgumentMapper(Context("demo", interactive=True), prompter)
        arguments = mapper.map(node, mapper.parse(node, []))
        self.assertEqual(arguments["host"], "example.com")

    def testNonInteractiveNeverPrompts(self):
        node = Command("login", options=[Option("host", required=True, promptable=True)], handler=print)
        prompter = Prompter("example.com")
        mapper = ArgumentMapper(Context("demo"), prompter)
        self.assertNotIn("host", mapper.map(node, mapper.parse(node, [])))
        self.assertEqual(prompter.calls, [])


if __name__ == "__main__":
    unittest.main()
