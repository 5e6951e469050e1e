"""
Config module behavioral tests (context building, logging setup).

Conventions
- Test method names follow CamelCase per project convention.
- Environments are explicit mappings; os.environ is never modified.
"""

from __future__ import annotations

import io
import logging
import os
import unittest
from unittest import TestCase

from imperative import Context, configure_logging


class TestContext(TestCase):

    def testDefaults(self):
        context = Context("my-cli")
        self.assertEqual(context.prefix, "MY_CLI")
        self.assertEqual(context.home, os.path.join(os.path.expanduser("~"), ".my-cli"))
        self.assertEqual(context.prompt_phrase, "PROMPT*")
        self.assertFalse(context.interactive)
        self.assertFalse(context.diagnostic)
        self.assertEqual(context.log_level, "WARNING")

    def testValidation(self):
        with self.assertRaises(ValueError):
            Context("  ")
        with self.assertRaises(ValueError):
            Context("demo", prompt_phrase="")
        with self.assertRaises(ValueError):
            Context("demo", log_level="chatty")

    def testFromEnviron(self):
        context = Context.from_environ("demo", environ={
            "DEMO_CLI_HOME": "/srv/demo",
            "DEMO_DIAGNOSTIC": "true",
            "DEMO_LOG_LEVEL": "debug",
            "NO_COLOR": "1",
            "DEMO_OPT_FLAVOR": "bold",
        })
        self.assertEqual(context.home, "/srv/demo")
        self.assertTrue(context.diagnostic)
        self.assertEqual(context.log_level, "DEBUG")
        self.assertFalse(context.colorful)
        self.assertEqual(context.environ["DEMO_OPT_FLAVOR"], "bold")

    def testFromEnvironOverrides(self):
        context = Context.from_environ("demo", "APP", environ={"APP_DIAGNOSTIC": "1"}, diagnostic=False, interactive=True)
        self.assertEqual(context.prefix, "APP")
        self.assertFalse(context.diagnostic)
        self.assertTrue(context.interactive)

    def testEnvironIsReadOnly(self):
        context = Context("demo", environ={"A": "1"})
        with self.assertRaises(TypeError):
            context.environ["B"] = "2"  # NOQA

    def testReplace(self):
        context = Context("demo", home="/tmp/demo").__replace__(diagnostic=True)
        self.assertTrue(context.diagnostic)
        self.assertEqual(context.home, "/tmp/demo")
        self.assertEqual(context.prefix, "DEMO")


class TestLogging(TestCase):

    def tearDown(self):
        logger = logging.getLogger("imperative")
        for handler in list(logger.handlers):
            if getattr(handler, "_imperative", False):
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def testHandlerInstalledOnce(self):
        stream = io.StringIO()
        context = Context("demo", log_level="info")
        configure_logging(context, stream)
        logger = configure_logging(context, stream)
        self.assertEqual(logger.level, logging.INFO)
        self.assertEqual(sum(getattr(handler, "_imperative", False) for handler in logger.handlers), 1)

    def testRecordsReachStream(self):
        stream = io.StringIO()
        configure_logging(Context("demo", log_level="debug"), stream)
        logging.getLogger("imperative.mapping").debug("resolved arguments")
        self.assertIn("resolved arguments", stream.getvalue())


if __name__ == "__main__":
    unittest.main()
