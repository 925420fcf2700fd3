"""
Help tests (built-in help API, default helper rendering).

Conventions
- Test method names follow CamelCase per project convention.
- Output assertions look for short fragments only; table layout is rich's.
"""
import asyncio
import io
import unittest
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from typing import Annotated
from unittest import TestCase, mock

from commandeer import (
    AboutApi,
    ApiDescriptor,
    Argument,
    Configuration,
    HelpApi,
    InvalidValueError,
    VersionApi,
    api,
    exit_code,
    method,
    run,
)


@contextmanager
def capture():
    stdout, stderr = io.StringIO(), io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        yield stdout, stderr


class RecordingHelper:
    def __init__(self):
        self.contexts = []

    def __display_help__(self, context, /):
        self.contexts.append(context)
        return 1


@api("shop", default=True, descr="Shop commands.")
class ShopApi:
    @method(default=True, descr="Greet a customer.", stderr="a warning for unknown customers")
    @exit_code(0, "greeted")
    def greet(self, name: Annotated[str, Argument(descr="customer name", example="ann")]):
        return 0

    @method(descr="Close the shop.")
    def close_shop(self, force: Annotated[bool, Argument()] = False):
        return 0


def dispatch(args, /, **options):
    return asyncio.run(run(args, ShopApi, HelpApi, **options))


class TestHelpApi(TestCase):
    def testGeneralHelp(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["help"]), 0)
        self.assertIn("shop", stdout.getvalue())
        self.assertIn("Shop commands.", stdout.getvalue())

    def testApiHelp(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["help", "--api", "shop"]), 0)
        self.assertIn("greet", stdout.getvalue())
        self.assertIn("close_shop", stdout.getvalue())

    def testCommandHelpWithDetails(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["help", "--api", "SHOP", "--method", "greet", "-details"]), 0)
        output = stdout.getvalue()
        self.assertIn("usage:", output)
        self.assertIn("--name", output)
        self.assertIn("greeted", output)

    def testUnknownApi(self):
        with capture() as (stdout, stderr):
            self.assertEqual(dispatch(["help", "--api", "nope"]), 1)
        self.assertIn("unknown api", stderr.getvalue())
        self.assertEqual(stdout.getvalue(), "")

    def testUnknownCommand(self):
        with capture() as (_, stderr):
            self.assertEqual(dispatch(["help", "--api", "shop", "--method", "nope"]), 1)
        self.assertIn("unknown command", stderr.getvalue())

    def testMethodNeedsApi(self):
        helper = RecordingHelper()
        self.assertEqual(dispatch(["help", "--method", "greet"], config=Configuration(helper=helper)), 1)
        context, = helper.contexts
        self.assertIsInstance(context.exception, InvalidValueError)
        self.assertEqual(context.exception.argument, "api")


    def testStreamsAreDescribed(self):
        self.assertEqual(ApiDescriptor.of(ShopApi).methods["greet"].stderr, "a warning for unknown customers")
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["help", "--api", "shop", "--method", "greet"]), 0)
        self.assertIn("stderr:", stdout.getvalue())
        self.assertIn("a warning for unknown customers", stdout.getvalue())


class TestAppInfoApis(TestCase):
    def setUp(self):
        for cls in (VersionApi, AboutApi):
            patcher = mock.patch.object(cls, "version", "2.0.1")
            patcher.start()
            self.addCleanup(patcher.stop)

    def info(self, args, /):
        with capture() as (stdout, _):
            code = asyncio.run(run(args, ShopApi, VersionApi, AboutApi, config=Configuration(prog="shopctl", colorful=False)))
        return code, stdout.getvalue()

    def testVersion(self):
        self.assertEqual(self.info(["version"]), (0, "shopctl version 2.0.1\n"))

    def testExplicitTitle(self):
        with mock.patch.object(VersionApi, "title", "Shop Tools"):
            self.assertEqual(self.info(["version"]), (0, "Shop Tools version 2.0.1\n"))

    def testAbout(self):
        self.assertEqual(self.info(["about"]), (0, "shopctl version 2.0.1\n"))
        with mock.patch.object(AboutApi, "info", "Made for the shop team."):
            self.assertEqual(self.info(["about"]), (0, "shopctl version 2.0.1\n\nMade for the shop team.\n"))

    def testAboutVersionNamesTheBuild(self):
        code, output = self.info(["about", "version"])
        self.assertEqual(code, 0)
        self.assertIn("shopctl version 2.0.1 (", output)
        self.assertIn("debug build" if __debug__ else "optimized build", output)

    def testDefaultCommands(self):
        self.assertEqual(ApiDescriptor.of(VersionApi).default_method.name, "display")
        self.assertEqual(ApiDescriptor.of(AboutApi).default_method.name, "info")


class TestHelper(TestCase):
    def testFaultAndUsageAreRendered(self):
        with capture() as (stdout, stderr):
            self.assertEqual(dispatch(["shop", "greet"], config=Configuration(prog="shopctl")), 1)
        self.assertIn("Missing Argument", stderr.getvalue())
        self.assertIn("shopctl", stderr.getvalue())
        self.assertIn("usage:", stdout.getvalue())

    def testResolutionMissShowsGeneralHelp(self):
        with capture() as (stdout, stderr):
            self.assertEqual(dispatch(["nowhere"]), 1)
        self.assertEqual(stderr.getvalue(), "")
        self.assertIn("shop", stdout.getvalue())

    def testFancyPanel(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["nowhere"], config=Configuration(fancy=True, prog="shopctl")), 1)
        self.assertIn("SHOPCTL HELP", stdout.getvalue())


if __name__ == "__main__":
    unittest.main()
