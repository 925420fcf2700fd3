"""
Utility, fault and logging tests.

Conventions
- Test method names follow CamelCase per project convention.
"""
import io
import logging
import sys
import unittest
from contextlib import redirect_stderr
from unittest import TestCase, mock

from rich.console import Console
from rich.logging import RichHandler

from commandeer import (
    CommandException,
    FaultCode,
    MissingArgumentError,
    getdoc,
    render,
)
from commandeer.logs import configure
from commandeer.utils import Unset, UnsetType, coalesce, mglob, mirror, rename


class TestUnset(TestCase):
    def testSingletonAndFalsey(self):
        self.assertIs(UnsetType(), Unset)
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")

    def testSealed(self):
        with self.assertRaises(TypeError):
            type("Subclass", (UnsetType,), {})

    def testCoalesce(self):
        self.assertEqual(coalesce(Unset, 1), 1)
        self.assertIsNone(coalesce(Unset))
        self.assertIsNone(coalesce(None, 1))
        self.assertEqual(coalesce(0, 1), 0)


class TestHelpers(TestCase):
    def testRename(self):
        @rename("renamed")
        def original():
            pass

        self.assertEqual(original.__name__, "renamed")
        self.assertEqual(original.__qualname__, "renamed")
        with self.assertRaises(TypeError):
            rename(1, "name")
        with self.assertRaises(TypeError):
            rename()

    def testMirrorDetachesContainers(self):
        class Holder:
            items = mirror("items")

            def __init__(self):
                self._items = [1, [2, 3]]

        holder = Holder()
        self.assertEqual(holder.items, (1, (2, 3)))
        with self.assertRaises(AttributeError):
            holder.items = ()

    def testModuleGlobs(self):
        self.assertEqual(mglob("commandeer.help*"), ["commandeer.helper"])
        self.assertEqual(mglob("commandeer.utils"), ["commandeer.utils"])
        self.assertIn("commandeer.dispatch", mglob("commandeer.**"))
        self.assertEqual(mglob("missing_package_here.*"), [])
        with self.assertRaises(ValueError):
            mglob("*.apis")


class TestFaults(TestCase):
    def testDefaults(self):
        fault = MissingArgumentError("argument '--name <value>' is required", argument="name")
        self.assertIs(fault.code, FaultCode.MISSING_ARGUMENT)
        self.assertEqual(fault.options["title"], "missing argument")
        self.assertEqual(fault.argument, "name")
        self.assertEqual(str(fault), "argument '--name <value>' is required")

    def testReplaceKeepsMessageAndOptions(self):
        fault = MissingArgumentError("missing", argument="name").__replace__(hint="pass --name")
        self.assertIsInstance(fault, MissingArgumentError)
        self.assertEqual(fault.message, "missing")
        self.assertEqual(fault.argument, "name")
        self.assertEqual(fault.options["hint"], "pass --name")

    def testCodeOverride(self):
        fault = CommandException("failed", code=FaultCode.INVALID_VALUE)
        self.assertIs(fault.code, FaultCode.INVALID_VALUE)
        self.assertEqual(FaultCode.MALFORMED_TOKEN.normalize(), "11101")

    def testGetdoc(self):
        self.assertIsNone(getdoc(FaultCode.MALFORMED_TOKEN))
        with self.assertRaises(TypeError):
            getdoc(11101)

    def testRenderForeignException(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            render(RuntimeError("boom"), prog="tool", colorful=False)
        self.assertIn("boom", stderr.getvalue())
        self.assertIn("tool", stderr.getvalue())
        self.assertIn("11131", stderr.getvalue())

    def testRenderPrintsRegisteredDoc(self):
        docs = {FaultCode.MISSING_ARGUMENT: "Every required argument must be passed."}
        stderr = io.StringIO()
        with mock.patch.object(sys.modules["__main__"], "__docs__", docs, create=True), redirect_stderr(stderr):
            self.assertEqual(getdoc(FaultCode.MISSING_ARGUMENT), docs[FaultCode.MISSING_ARGUMENT])
            render(MissingArgumentError("missing", argument="name"), prog="tool", colorful=False)
            render(RuntimeError("boom"), prog="tool", colorful=False)
        self.assertEqual(stderr.getvalue().count("Every required argument must be passed."), 1)

    def testRenderRejectsNonExceptions(self):
        with self.assertRaises(TypeError):
            render("boom")


class TestLogs(TestCase):
    def tearDown(self):
        logger = logging.getLogger("commandeer")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def testConfigureInstallsOneHandler(self):
        console = Console(file=io.StringIO())
        configure("debug", console=console)
        logger = configure("Info", console=console)
        self.assertEqual(logger.level, logging.INFO)
        self.assertEqual(sum(isinstance(handler, RichHandler) for handler in logger.handlers), 1)

    def testChildLoggersReachTheHandler(self):
        stream = io.StringIO()
        configure("warning", console=Console(file=stream, width=200))
        logging.getLogger("commandeer.dispatch").warning("break in arguments chunk #%d", 2)
        self.assertIn("break in arguments chunk #2", stream.getvalue())

    def testInvalidLevels(self):
        with self.assertRaises(ValueError):
            configure("loud")
        with self.assertRaises(TypeError):
            configure(True)


if __name__ == "__main__":
    unittest.main()
