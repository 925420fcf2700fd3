"""
Commandeer faults (recoverable input errors, fatal authoring errors) and rendering.

Scope
- FaultCode: stable numeric identifiers for every user-facing fault. Codes are
  grouped by the stage that raises them (tokenizing, binding, invocation).
- CommandException: base type for recoverable faults. It carries a message plus
  options (code, title, hint, argument, ...) and renders itself through rich.
- ConfigurationError: metadata authoring mistakes. Never escalated to help, it
  propagates to the caller so it surfaces during development.
- render(): print any exception the way the default helper shows it.
- getdoc(): optional long description for a code, supplied by the host app.

UX
- Lowercased, one-sentence messages with a single actionable hint.
- Styles are overridable through a __styles__ mapping in __main__, codes through
  __codes__, the program name through __prog__.
"""
import os
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset, coalesce

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - tokenizing (1110x)
      • MALFORMED_TOKEN
    - binding (1111x/1112x)
      • FLAG_VALUE, VALUE_REQUIRED, SINGLE_VALUE, MISSING_ARGUMENT,
        INVALID_VALUE, UNPARSABLE_VALUE
    - invocation (1113x)
      • DELEGATED_ERROR
    """
    # --- tokenizing errors ---
    MALFORMED_TOKEN             = 11101

    # --- binding errors ---
    FLAG_VALUE                  = 11111
    VALUE_REQUIRED              = 11112
    SINGLE_VALUE                = 11113
    MISSING_ARGUMENT            = 11114
    INVALID_VALUE               = 11121
    UNPARSABLE_VALUE            = 11122

    # --- invocation errors ---
    DELEGATED_ERROR             = 11131

    def normalize(self):
        """
        return a host-normalized label for this code.

        the host may publish a __codes__ mapping in __main__; without it the
        numeric value is used.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class CommandException(Exception):
    """
    Base class of every recoverable fault.

    Subclasses set __code__, __title__ and __hint__ defaults; raise sites may
    override any of them through options.
    """
    __code__ = FaultCode.DELEGATED_ERROR
    __title__ = "command error"
    __hint__ = "run the help api for usage details"

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(*(() if message is Unset else (message,)))
        self.message = message
        self.options = MappingProxyType({
            "code": type(self).__code__,
            "title": type(self).__title__,
            "hint": type(self).__hint__,
        } | options)

    @property
    def code(self):
        return self.options["code"]

    def __rich__(self):
        main = __import__("__main__")
        colorful = self.options.get("colorful", True)
        fancy = self.options.get("fancy", False)

        styles = defaultdict(str, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        } | getattr(main, "__styles__", {}))

        def text(fragment, style):
            if not fragment:
                return Text("")
            if isinstance(fragment, Text):
                return fragment if colorful else Text(fragment.plain)
            return Text(str(fragment), styles[style] if colorful else "")

        prog = coalesce(
            self.options.get("prog", Unset),
            getattr(main, "__prog__", os.path.basename(sys.argv[0]) or "commandeer"),
        )
        header = Text.assemble(
            "[ ",
            text(prog, "prog-name"),
            " - ",
            text(self.options["code"].normalize(), "code"),
            " | ",
            text(self.options["title"].title(), "error-title"),
            " ]",
        )
        message = text(coalesce(self.message, ""), "error-message")
        hint = Text.assemble(text(" → ", "hint-arrow"), text(self.options["hint"], "hint"))

        if fancy:
            return Panel(Group(message, hint), title=header, title_align="left")
        return Group(header, message, hint)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class MalformedTokenError(CommandException):
    __code__ = FaultCode.MALFORMED_TOKEN
    __title__ = "malformed token"
    __hint__ = "check the spelling of dashes and keys"


class CliArgumentError(CommandException):
    """
    A binding fault tied to one argument slot (options["argument"]).
    """
    __title__ = "invalid argument"

    @property
    def argument(self):
        return self.options.get("argument")


class FlagValueError(CliArgumentError):
    __code__ = FaultCode.FLAG_VALUE
    __title__ = "flag with value"
    __hint__ = "pass the flag alone, as -name, without a value"


class ValueRequiredError(CliArgumentError):
    __code__ = FaultCode.VALUE_REQUIRED
    __title__ = "value required"
    __hint__ = "pass a value after the key, as --name value"


class SingleValueError(CliArgumentError):
    __code__ = FaultCode.SINGLE_VALUE
    __title__ = "too many values"
    __hint__ = "this argument accepts exactly one value"


class MissingArgumentError(CliArgumentError):
    __code__ = FaultCode.MISSING_ARGUMENT
    __title__ = "missing argument"
    __hint__ = "provide every required argument"


class InvalidValueError(CliArgumentError):
    __code__ = FaultCode.INVALID_VALUE
    __title__ = "invalid value"


class UnparsableValueError(CliArgumentError):
    __code__ = FaultCode.UNPARSABLE_VALUE
    __title__ = "unparsable value"
    __hint__ = "check the value format (json values must be valid json)"


class DelegatedCommandError(CommandException):
    """
    Rendering wrapper for foreign exceptions raised by a command.
    """
    __title__ = "command failed"
    __hint__ = "the command raised an unexpected error"


class ConfigurationError(TypeError):
    """
    Fatal metadata authoring mistake (abstract holder, read-only slot, json
    decoding needed but not enabled, ...). Never routed to escalation.
    """


def render(fault, /, **options):
    """
    print a fault to stderr.

    CommandException instances get the options merged in via __replace__;
    any other exception is shown as a delegated command error titled after
    its type. A description registered for the fault code through __docs__
    is printed below it.
    """
    if not isinstance(fault, BaseException):
        raise TypeError("render() argument must be an exception")
    if not isinstance(fault, CommandException):
        fault = DelegatedCommandError(str(fault) or type(fault).__name__, title=type(fault).__name__)
    fault = fault.__replace__(**options)
    console.print(fault)
    if isinstance(fault.code, FaultCode) and (doc := getdoc(fault.code)):
        console.print(doc if isinstance(doc, Text) else Text(str(doc), "dim" if fault.options.get("colorful", True) else ""))


def getdoc(code, /):
    """
    optional documentation for a fault code.

    the host may publish a __docs__ mapping (FaultCode -> str) in __main__;
    returns None when nothing is registered.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    return getattr(__import__("__main__"), "__docs__", {}).get(code)


__all__ = (
    "FaultCode",
    "CommandException",
    "MalformedTokenError",
    "CliArgumentError",
    "FlagValueError",
    "ValueRequiredError",
    "SingleValueError",
    "MissingArgumentError",
    "InvalidValueError",
    "UnparsableValueError",
    "DelegatedCommandError",
    "ConfigurationError",
    "render",
    "getdoc",
)
