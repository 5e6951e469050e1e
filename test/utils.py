"""
Utils module behavioral tests (sentinel, spellings, censoring, suggestions).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import unittest
from types import MappingProxyType
from unittest import TestCase

from imperative.utils import (
    Unset,
    UnsetType,
    camel,
    censor,
    coalesce,
    dashed,
    envname,
    kebab,
    mirror,
    ordinal,
    rename,
    suggest,
)


class TestUnset(TestCase):

    def testUnsetIsSingletonAndFalsey(self):
        self.assertIs(UnsetType(), Unset)
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testUnsetCannotBeSubclassed(self):
        with self.assertRaises(TypeError):
            class Other(UnsetType):  # NOQA: F-841
                pass

    def testUnsetJoinsTypeUnions(self):
        self.assertIsInstance("x", str | Unset)
        self.assertIsInstance(Unset, str | Unset)
        self.assertNotIsInstance(1, str | Unset)

    def testCoalescePreservesFalseyValues(self):
        self.assertEqual(coalesce(Unset, 1), 1)
        self.assertIsNone(coalesce(Unset))
        self.assertIsNone(coalesce(None, 1))
        self.assertEqual(coalesce(0, 1), 0)


class TestHelpers(TestCase):

    def testRenameSetsNames(self):
        @rename("renamed")
        def original():
            pass

        self.assertEqual(original.__name__, "renamed")
        self.assertEqual(original.__qualname__, "renamed")

    def testRenameRejectsNonCallable(self):
        with self.assertRaises(TypeError):
            rename(1, "x")

    def testMirrorFreezesContainers(self):
        class Holder:
            items = mirror("items")
            table = mirror("table")

            def __init__(self):
                self._items = ["a", "b"]
                self._table = {"k": ["v"]}

        holder = Holder()
        self.assertEqual(holder.items, ("a", "b"))
        self.assertIsInstance(holder.table, MappingProxyType)
        self.assertEqual(holder.table["k"], ("v",))
        with self.assertRaises(AttributeError):
            holder.items = ()


class TestSpellings(TestCase):

    def testKebabFromCamelAndSnake(self):
        self.assertEqual(kebab("accountNumber"), "account-number")
        self.assertEqual(kebab("account_number"), "account-number")
        self.assertEqual(kebab("account-number"), "account-number")

    def testKebabKeepsSingleUppercaseAlias(self):
        self.assertEqual(kebab("H"), "H")
        self.assertEqual(kebab("h"), "h")

    def testCamelFromKebab(self):
        self.assertEqual(camel("account-number"), "accountNumber")
        self.assertEqual(camel("host"), "host")

    def testDashed(self):
        self.assertEqual(dashed("h"), "-h")
        self.assertEqual(dashed("host"), "--host")

    def testEnvironmentVariableName(self):
        self.assertEqual(envname("ZOWE", "accountNumber"), "ZOWE_OPT_ACCOUNT_NUMBER")
        self.assertEqual(envname("DEMO", "flavor"), "DEMO_OPT_FLAVOR")


class TestCensor(TestCase):

    def testWellKnownNamesAreCensored(self):
        self.assertEqual(censor("password", "secret"), "****")
        self.assertEqual(censor("basicAuth", "secret"), "****")
        self.assertEqual(censor("p", "secret"), "****")

    def testOtherNamesPassThrough(self):
        self.assertEqual(censor("host", "example.com"), "example.com")

    def testSecureNamesAreCensored(self):
        self.assertEqual(censor("token-value", "abc", {"token-value"}), "****")
        self.assertEqual(censor("tokenValue", "abc", {"token-value"}), "****")


class TestMessages(TestCase):

    def testSuggestClosestFirst(self):
        self.assertEqual(suggest("lst", ["list", "delete"]), ["list"])
        self.assertEqual(suggest("zzz", ["list", "delete"]), [])

    def testOrdinalWordsThenSuffixes(self):
        self.assertEqual(ordinal(1), "first")
        self.assertEqual(ordinal(10), "tenth")
        self.assertEqual(ordinal(11), "11th")
        self.assertEqual(ordinal(22), "22nd")
        self.assertEqual(ordinal(103), "103rd")


if __name__ == "__main__":
    unittest.main()
