"""
Dispatcher tests (API/command resolution, exit codes, escalation, chaining).

Conventions
- Test method names follow CamelCase per project convention.
- Help output is replaced by a recording helper unless the test is about it.
"""
import asyncio
import importlib
import io
import os
import sys
import tempfile
import threading
import unittest
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from typing import Annotated
from unittest import TestCase

from commandeer import (
    Argument,
    Configuration,
    ConfigurationError,
    HelpApi,
    MalformedTokenError,
    MissingArgumentError,
    ParserRegistry,
    api,
    current,
    exit_code,
    invoke,
    method,
    run,
    split,
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


def dispatch(args, /, *apis, **options):
    return asyncio.run(run(args, *apis, **options))


@api("calc", default=True)
class CalcApi:
    @method(default=True)
    @exit_code(123, "the message was printed")
    def echo(self, message: Annotated[str, Argument()]):
        print(message)
        return 123

    @method
    def sum(self, numbers: Annotated[list[str], Argument(0)]):
        print(sum(map(int, numbers)))

    @method
    def sum2(self, integers: Annotated[list[int], Argument(json=True)]):
        return sum(integers)

    @method
    def truth(self):
        return True

    @method
    async def later(self, code: Annotated[int, Argument(json=True)] = 7):
        await asyncio.sleep(0)
        return code

    @method
    def custom(self, number: Annotated[float, Argument()]):
        print(number)


@api("tool")
class ToolApi:
    @method(default=True)
    def ping(self, rest: Annotated[list[str], Argument(0)] = ()):
        return 5 + len(rest)

    @method
    def pong(self):
        return 9


@api
class SoloApi:
    @method
    def only(self, word: Annotated[str, Argument(0)]):
        print(word)


@api
class ResourceApi:
    instances = []

    def __init__(self):
        self.closed = False
        type(self).instances.append(self)

    def close(self):
        self.closed = True

    @method
    def fail(self):
        raise RuntimeError("boom")


@api
class AsyncResourceApi:
    instances = []

    def __init__(self):
        self.closed = False
        type(self).instances.append(self)

    async def aclose(self):
        self.closed = True

    @method
    async def fail(self):
        raise RuntimeError("boom")


@api
class GuardedApi:
    @method
    def need(self, value: Annotated[str, Argument()]):
        return 0

    async def __handle_error__(self, context, /):
        return 42

    def __display_help__(self, context, /):
        return 43


@api
class EmptyApi:
    def __display_help__(self, context, /):
        return 43


@api
class SloppyApi:
    @method
    def fail(self):
        raise RuntimeError("boom")

    def __handle_error__(self, context, /):
        return "handled"


@api
class ContextApi:
    seen = []

    @method
    def peek(self, label: Annotated[str, Argument()] = "none"):
        type(self).seen.append(current())

    @method
    def auto(self, cancellation=None, extra=3):
        return extra + (10 if cancellation is not None else 0)

    @method
    def manual(self, items: list, count=4, label=None):
        return len(items) + count + (0 if label is None else 100)

    @method
    def shifted(self, skipped=5, word: Annotated[str, Argument()] = "none", /):
        return skipped + len(word)

    @method
    def strict(self, needed, /):
        return 0 if needed is None else 1


FOUND_SOURCE = """
from typing import Annotated

from commandeer import Argument, api, method


@api("found")
class FoundApi:
    @method(default=True)
    def hello(self, name: Annotated[str, Argument()] = "world"):
        print("hello " + name)
        return 7
"""


@contextmanager
def package(name, /, **modules):
    """Import path entry holding a throwaway package made of the given module sources."""
    with tempfile.TemporaryDirectory() as root:
        os.mkdir(os.path.join(root, name))
        for module, source in {"__init__": "", **modules}.items():
            with open(os.path.join(root, name, module + ".py"), "w", encoding="utf-8") as stream:
                stream.write(source)
        sys.path.insert(0, root)
        importlib.invalidate_caches()
        try:
            yield
        finally:
            sys.path.remove(root)
            for module in [module for module in sys.modules if module == name or module.startswith(name + ".")]:
                del sys.modules[module]


class TestResults(TestCase):
    def testIntegerResultIsTheExitCode(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["calc", "echo", "--message", "test"], CalcApi, ToolApi), 123)
        self.assertEqual(stdout.getvalue(), "test\n")

    def testJsonArrayCommand(self):
        self.assertEqual(dispatch(["calc", "sum2", "--integers", "1", "2", "3"], CalcApi, ToolApi), 6)

    def testKeylessArrayAfterSelection(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["calc", "sum", "1", "2", "3"], CalcApi, ToolApi), 0)
        self.assertEqual(stdout.getvalue(), "6\n")

    def testBooleanResultIsSuccess(self):
        self.assertEqual(dispatch(["truth"], CalcApi), 0)

    def testAsynchronousCommand(self):
        self.assertEqual(dispatch(["later"], CalcApi), 7)
        self.assertEqual(dispatch(["later", "--code", "9"], CalcApi), 9)

    def testCommandLineString(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch("calc echo --message 'a b'", CalcApi, ToolApi), 123)
        self.assertEqual(stdout.getvalue(), "a b\n")

    def testCustomParserFromConfiguration(self):
        parsers = ParserRegistry({float: lambda name, type, token: type(token.replace(",", "."))})
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["custom", "--number", "1,5"], CalcApi, config=Configuration(parsers=parsers)), 0)
        self.assertEqual(stdout.getvalue(), "1.5\n")


class TestResolution(TestCase):
    def setUp(self):
        self.helper = RecordingHelper()
        self.config = Configuration(helper=self.helper)

    def testSingleApiNeedsNoApiToken(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["echo", "--message", "hi"], CalcApi), 123)
            self.assertEqual(dispatch(["--message", "hi"], CalcApi), 123)
        self.assertEqual(stdout.getvalue(), "hi\nhi\n")

    def testSingleCommandConsumesNoToken(self):
        with capture() as (stdout, _):
            self.assertEqual(dispatch(["only"], SoloApi), 0)
        self.assertEqual(stdout.getvalue(), "only\n")

    def testDefaultApiWithoutKeylessTokens(self):
        with capture():
            self.assertEqual(dispatch(["--message", "x"], ToolApi, CalcApi), 123)

    def testApiByClassName(self):
        self.assertEqual(dispatch(["TOOLAPI", "pong"], CalcApi, ToolApi), 9)

    def testUnknownCommandFallsBackToDefault(self):
        self.assertEqual(dispatch(["tool", "ping"], CalcApi, ToolApi), 5)
        self.assertEqual(dispatch(["tool", "unknown", "x"], CalcApi, ToolApi), 7)

    def testUnknownApiEscalatesWithoutException(self):
        self.assertEqual(dispatch(["nope"], CalcApi, ToolApi, config=self.config), 1)
        context, = self.helper.contexts
        self.assertIsNone(context.exception)
        self.assertIsNone(context.descriptor)
        self.assertIsNone(context.api)

    def testMalformedTokenEscalates(self):
        self.assertEqual(dispatch(["calc", "--"], CalcApi, ToolApi, config=self.config), 1)
        context, = self.helper.contexts
        self.assertIsInstance(context.exception, MalformedTokenError)
        self.assertIsNone(context.arguments)

    def testMissingArgumentEscalates(self):
        self.assertEqual(dispatch(["calc", "echo"], CalcApi, ToolApi, config=self.config), 1)
        context, = self.helper.contexts
        self.assertIsInstance(context.exception, MissingArgumentError)
        self.assertEqual(context.method.name, "echo")
        self.assertEqual(context.descriptor.name, "calc")


class TestEscalation(TestCase):
    def setUp(self):
        self.helper = RecordingHelper()
        self.config = Configuration(helper=self.helper)
        ResourceApi.instances.clear()
        AsyncResourceApi.instances.clear()

    def testFailureEscalatesAndDisposes(self):
        self.assertEqual(dispatch(["fail"], ResourceApi, config=self.config), 1)
        self.assertIsInstance(self.helper.contexts[0].exception, RuntimeError)
        instance, = ResourceApi.instances
        self.assertTrue(instance.closed)

    def testAsynchronousDisposal(self):
        self.assertEqual(dispatch(["fail"], AsyncResourceApi, config=self.config), 1)
        instance, = AsyncResourceApi.instances
        self.assertTrue(instance.closed)

    def testErrorHandlerTakesFaults(self):
        self.assertEqual(dispatch(["need"], GuardedApi, config=self.config), 42)
        self.assertEqual(self.helper.contexts, [])

    def testHelpProviderTakesResolutionMisses(self):
        self.assertEqual(dispatch(["anything"], EmptyApi, config=self.config), 43)

    def testNonIntegerHandlerResultIsFailure(self):
        self.assertEqual(dispatch(["fail"], SloppyApi, config=self.config), 1)

    def testExportedHelpApiDelegatesToHelper(self):
        self.assertEqual(dispatch(["nope"], CalcApi, HelpApi, config=self.config), 1)
        self.assertEqual(len(self.helper.contexts), 1)

    def testConfigurationErrorPropagates(self):
        with self.assertRaises(ConfigurationError):
            dispatch(["custom", "--number", "1.5"], CalcApi, config=self.config)
        self.assertEqual(self.helper.contexts, [])

    def testNoExportedApis(self):
        with self.assertRaises(ConfigurationError):
            dispatch(["x"])


class TestRunControl(TestCase):
    def setUp(self):
        ContextApi.seen.clear()

    def testCancelledBeforeDispatch(self):
        cancellation = threading.Event()
        cancellation.set()
        with self.assertRaises(asyncio.CancelledError):
            dispatch(["peek"], ContextApi, cancellation=cancellation)
        self.assertEqual(ContextApi.seen, [])

    def testInvokeAutoInjectsCancellation(self):
        config = Configuration(invoke_auto=True)
        self.assertEqual(dispatch(["auto"], ContextApi, config=config, cancellation=threading.Event()), 13)
        self.assertEqual(dispatch(["auto"], ContextApi, config=config), 3)

    def testNonArgumentParameters(self):
        self.assertEqual(dispatch(["manual"], ContextApi), 4)

    def testInvokeAutoKeepsPositionalOnlyDefaults(self):
        config = Configuration(invoke_auto=True)
        self.assertEqual(dispatch(["shifted", "--word", "abc"], ContextApi, config=config), 8)
        self.assertEqual(dispatch(["shifted"], ContextApi, config=config), 9)
        self.assertEqual(ContextApi.seen, [])

    def testInvokeAutoRejectsPositionalOnlyWithoutDefault(self):
        with self.assertRaises(ConfigurationError):
            dispatch(["strict"], ContextApi, config=Configuration(invoke_auto=True))
        self.assertEqual(dispatch(["strict"], ContextApi), 0)

    def testCurrentContext(self):
        self.assertEqual(dispatch(["peek", "--label", "x"], ContextApi), 0)
        context, = ContextApi.seen
        self.assertEqual(context.method.name, "peek")
        self.assertIsInstance(context.api, ContextApi)
        self.assertEqual(context.parameters, ("x",))
        self.assertIsNone(current())


class TestChaining(TestCase):
    def testSplit(self):
        self.assertEqual(
            split(["a", "-", "b", "--x", "-", "c", "-", "-"]),
            [["a"], ["b", "--x", "-", "c"], [], []],
        )

    def testChainStopsAtFirstFailure(self):
        args = ["calc", "sum2", "--integers", "0", "-", "calc", "echo", "--message", "x", "-", "calc", "echo", "--message", "never"]
        with capture() as (stdout, _):
            self.assertEqual(invoke(args, CalcApi, ToolApi), 123)
        self.assertEqual(stdout.getvalue(), "x\n")

    def testBreakIsLoggedWhenChunksAreSkipped(self):
        args = ["calc", "echo", "--message", "x", "-", "calc", "sum", "1"]
        with capture(), self.assertLogs("commandeer.dispatch", "WARNING") as logs:
            self.assertEqual(invoke(args, CalcApi, ToolApi), 123)
        self.assertEqual(logs.output, ["WARNING:commandeer.dispatch:break in arguments chunk #1 with exit code 123"])

    def testFailingLastChunkIsNotLoggedAsBreak(self):
        with capture(), self.assertNoLogs("commandeer.dispatch", "WARNING"):
            self.assertEqual(invoke(["calc", "echo", "--message", "x"], CalcApi, ToolApi), 123)
            self.assertEqual(invoke(["calc", "sum", "1", "-", "calc", "echo", "--message", "x", "-"], CalcApi, ToolApi), 123)

    def testSuccessfulChain(self):
        with capture() as (stdout, _):
            self.assertEqual(invoke(["calc", "sum", "1", "2", "-", "calc", "sum", "3"], CalcApi, ToolApi), 0)
        self.assertEqual(stdout.getvalue(), "3\n3\n")

    def testDelimitersOnly(self):
        with capture():
            self.assertEqual(invoke(["-", "-"], CalcApi), 0)

    def testNoTokensShowHelp(self):
        helper = RecordingHelper()
        self.assertEqual(invoke([], CalcApi, config=Configuration(helper=helper)), 1)
        context, = helper.contexts
        self.assertIsNone(context.exception)
        self.assertIsNone(context.arguments)


class TestDiscovery(TestCase):
    def testDiscoveredApisAreDispatched(self):
        config = Configuration(discover=("commandeer_found_apis.*",), helper=RecordingHelper())
        with package("commandeer_found_apis", tools=FOUND_SOURCE), capture() as (stdout, _):
            self.assertEqual(dispatch(["found", "--name", "there"], config=config), 7)
            self.assertEqual(invoke(["found", "--name", "again"], config=config), 7)
            self.assertEqual(dispatch(["nope"], config=config), 1)
        self.assertEqual(stdout.getvalue(), "hello there\nhello again\n")
        self.assertEqual(len(config.helper.contexts), 1)

    def testExplicitApisSkipDiscovery(self):
        config = Configuration(discover=("commandeer_found_apis.*",))
        with package("commandeer_found_apis", tools=FOUND_SOURCE), capture():
            self.assertEqual(dispatch(["pong"], ToolApi, config=config), 9)
        self.assertNotIn("commandeer_found_apis.tools", sys.modules)

    def testNothingDiscovered(self):
        with self.assertRaises(ConfigurationError):
            dispatch(["x"], config=Configuration(discover=("no_such_package_here.*",)))

    def testDiscoverOptionIsValidated(self):
        self.assertEqual(Configuration(discover=["a.*", "b.**.apis"]).discover, ("a.*", "b.**.apis"))
        with self.assertRaises(TypeError):
            Configuration(discover="a.*")
        with self.assertRaises(TypeError):
            Configuration(discover=(1,))


if __name__ == "__main__":
    unittest.main()
