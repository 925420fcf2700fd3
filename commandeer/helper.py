"""
Help rendering, the default helper and the built-in help API.

- Helper: the last link of the escalation chain. Shows the captured fault (if
  any) on stderr, then help for whatever the run resolved, and returns 1.
- HelpApi ("help"): an exportable API rendering general, API or command help
  on demand: `help`, `help --api demo`, `help --api demo --method echo -details`.
  It is also a help provider, so failures inside it escalate to the helper.
- usage(): the renderable both of them print.

Palette keys (override through __styles__ in __main__)
- usage-label, program-name, section-label, description
- api-name, command-name, default-marker
- argument-name, flag-name, required, optional, exit-code, panel-title
"""
import logging
from collections import defaultdict
from typing import Annotated

from rich.box import ROUNDED
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import faults
from .context import current
from .metadata import Argument, Kind, api, exit_code, method
from .utils import Unset, coalesce

logger = logging.getLogger(__name__)

console = Console()


def _palette(colorful, /):
    styles = defaultdict(str, {
        "usage-label": "bold #00E6FF",
        "program-name": "bold #FF4D94",
        "section-label": "bold #FFFFFF",
        "description": "italic #A3A3A3",
        "api-name": "bold #36C5F0",
        "command-name": "bold #36C5F0",
        "default-marker": "#737373",
        "argument-name": "bold #00E6FF",
        "flag-name": "bold #22C55E",
        "required": "bold #FFD600",
        "optional": "#9CA3AF",
        "exit-code": "bold #FF4D94",
        "panel-title": "bold #FF4D94",
    } | getattr(__import__("__main__"), "__styles__", {}))

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if isinstance(fragment, Text):
            return fragment if colorful else Text(fragment.plain)
        return Text(str(fragment), styles[style] if colorful else "")

    return text


def _general(context, details, text, /):
    table = Table("api", "description", box=ROUNDED, title=text("apis", "section-label"))
    for descriptor in context.apis:
        name = text(descriptor.name, "api-name")
        if descriptor.default:
            name.append(text(" (default)", "default-marker"))
        table.add_row(name, text(coalesce(descriptor.title, descriptor.descr) or "", "description"))
        if details:
            for command in descriptor.methods.values():
                table.add_row(Text("  ") + text(command.name, "command-name"), text(command.syntax(), "optional"))
    return [table]


def _api(descriptor, details, text, /):
    renders = [text(coalesce(descriptor.title, descriptor.name), "section-label")]
    if descriptor.descr:
        renders.append(text(descriptor.descr, "description"))
    table = Table("command", "usage" if details else "description", box=ROUNDED)
    for command in descriptor.methods.values():
        name = text(command.name, "command-name")
        if command is descriptor.default_method:
            name.append(text(" (default)", "default-marker"))
        table.add_row(name, text(command.syntax() if details else coalesce(command.title, command.descr) or "", "description"))
    renders.append(table)
    return renders


def _method(command, details, text, /):
    renders = [Text.assemble(text("usage: ", "usage-label"), text(command.syntax(), "program-name"))]
    if command.descr:
        renders.append(text(command.descr, "description"))
    if command.stdin:
        required = " (required)" if command.stdin_required else ""
        renders.append(Text.assemble(text("stdin: ", "section-label"), command.stdin + required))
    if command.stdout:
        renders.append(Text.assemble(text("stdout: ", "section-label"), command.stdout))
    if command.stderr:
        renders.append(Text.assemble(text("stderr: ", "section-label"), command.stderr))

    columns = ("argument", "kind", "description") + (("type", "example") if details else ())
    table = Table(*columns, box=ROUNDED)
    for slot in command.arguments():
        style = "flag-name" if slot.kind is Kind.FLAG else "argument-name"
        name = f"<{slot.name}>" if slot.keyless else ("-" if slot.kind is Kind.FLAG else "--") + slot.name
        row = [
            text(name, style),
            text(("required " if slot.required else "") + slot.kind.value + (" list" if slot.array else ""),
                 "required" if slot.required else "optional"),
            text(coalesce(slot.descr, slot.title) or "", "description"),
        ]
        if details:
            row += [Text(getattr(slot.type, "__name__", str(slot.type))), Text(coalesce(slot.example, ""))]
        table.add_row(*row)
    if table.row_count:
        renders.append(table)

    if command.exit_codes:
        codes = Table("exit code", "meaning", box=ROUNDED)
        for code, descr in command.exit_codes.items():
            codes.add_row(text(str(code), "exit-code"), descr)
        renders.append(codes)
    return renders


def usage(context, /, descriptor=Unset, command=Unset, *, details=False):
    """
    Build the help renderable: command help when a command is known, API help
    when only the API is, general help otherwise. Unset descriptor or command
    fall back to what the context resolved.
    """
    config = context.config
    text = _palette(config.colorful)
    descriptor = coalesce(descriptor, context.descriptor)
    command = coalesce(command, context.method if descriptor is context.descriptor else None)

    if command is not None:
        renders = _method(command, details, text)
    elif descriptor is not None:
        renders = _api(descriptor, details, text)
    else:
        renders = _general(context, details, text)

    renderable = Group(*renders)
    if config.fancy:
        prog = coalesce(config.prog, getattr(__import__("__main__"), "__prog__", "commandeer"))
        renderable = Panel(renderable, title=text(f"[ {prog} HELP ]".upper(), "panel-title"), title_align="left")
    return renderable


class Helper:
    """
    Default helper: renders the captured fault, then the help matching the
    context, and reports failure with exit code 1.
    """

    def __display_help__(self, context, /):
        if context.exception is not None:
            logger.debug("escalated with %r", context.exception)
            faults.render(context.exception, **context.config.options())
        console.print(usage(context))
        return 1


@api("help", title="Help", descr="Display help for the exported APIs and their commands.")
class HelpApi:
    """
    Built-in help API.
    """

    api_name: Annotated[str | None, Argument("api", descr="API to describe")] = None
    method_name: Annotated[str | None, Argument("method", descr="command to describe (needs --api)")] = None
    details: Annotated[bool, Argument(descr="include usage, types and examples")] = False

    def __validate__(self):
        if self.method_name is not None and self.api_name is None:
            yield "api", "--method needs --api"

    @method("help", default=True, descr="Display help.")
    @exit_code(0, "help was displayed")
    @exit_code(1, "the api or command is unknown")
    def help(self):
        context = current()
        descriptor = command = None
        if self.api_name is not None and (descriptor := context.lookup(self.api_name)) is None:
            faults.render(faults.CliArgumentError(f"unknown api {self.api_name!r}", argument="api"), **context.config.options())
            return 1
        if self.method_name is not None and (command := descriptor.lookup(self.method_name)) is None:
            faults.render(faults.CliArgumentError(f"unknown command {self.method_name!r}", argument="method"), **context.config.options())
            return 1
        console.print(usage(context, descriptor, command, details=self.details))
        return 0

    def __display_help__(self, context, /):
        return context.config.helper.__display_help__(context)


__all__ = (
    "Helper",
    "HelpApi",
    "usage",
)
