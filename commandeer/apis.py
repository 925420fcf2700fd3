"""
Built-in exportable APIs describing the application itself.

- VersionApi ("version"): `version` prints "<title> version <version>".
- AboutApi ("about"): `about` prints the version line plus the optional
  info text; `about version` adds the build flavour.

Title, version and info are class attributes the host application assigns
before dispatching:

    VersionApi.version = AboutApi.version = "1.4.0"
    AboutApi.info = "Maintained by the tools team."

Unset values fall back to the run's Configuration prog (then __main__.__prog__,
then the script name) for the title, and to __main__.__version__ (then "1.0.0")
for the version.
"""
import os
import sys

from rich.text import Text

from .context import current
from .helper import _palette, console
from .metadata import api, method
from .utils import Unset, coalesce


def _identity(cls, /):
    """Return (title, version, text factory) for a built-in API class."""
    main, context = __import__("__main__"), current()
    prog = Unset if context is None else context.config.prog
    title = coalesce(cls.title, coalesce(prog, getattr(main, "__prog__", os.path.basename(sys.argv[0]) or "commandeer")))
    version = coalesce(cls.version, getattr(main, "__version__", "1.0.0"))
    return title, str(version), _palette(True if context is None else context.config.colorful)


@api("version", title="Version", descr="Display the app version.")
class VersionApi:
    title = Unset
    version = Unset

    @classmethod
    @method("display", default=True, title="Display", descr="Display the app version.")
    def display(cls):
        title, version, text = _identity(cls)
        console.print(Text.assemble(text(title, "program-name"), " version ", text(version, "api-name")))


@api("about", title="About", descr="Display information about this app.")
class AboutApi:
    title = Unset
    version = Unset
    info = Unset

    @classmethod
    @method("info", default=True, title="Information", descr="Display detailed app information.")
    def display_info(cls):
        title, version, text = _identity(cls)
        console.print(Text.assemble(text(title, "program-name"), " version ", text(version, "api-name")))
        if cls.info:
            console.print()
            console.print(text(cls.info, "description"))

    @classmethod
    @method("version", title="Version", descr="Display app version information.")
    def display_version(cls):
        title, version, text = _identity(cls)
        build = "debug build" if __debug__ else "optimized build"
        console.print(Text.assemble(
            text(title, "program-name"),
            " version ",
            text(version, "api-name"),
            text(f" ({build})", "description"),
        ))


__all__ = (
    "VersionApi",
    "AboutApi",
)
