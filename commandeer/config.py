"""
Dispatcher configuration.

One Configuration object is created by the caller and passed to run(),
run_multi() or invoke(); nothing is read from process-wide state except the
__main__ hooks the renderers honour (__prog__, __styles__, __codes__).

Options
- parsers: ParserRegistry consulted for custom value types.
- helper: the default helper at the end of the escalation chain (Helper()).
- help_api: the designated help API type (HelpApi); consulted only when it is
  among the exported APIs.
- discover: module-glob patterns scanned for @api() classes when a run is
  given no API classes (see metadata.discover()).
- invoke_auto: non-argument parameters keep their Python defaults; a
  parameter named "cancellation" receives the run's cancellation object.
  Positional-only ones need a default.
- colorful / fancy / prog: rendering options for help and faults.
"""
from .helper import Helper, HelpApi
from .parsers import ParserRegistry
from .utils import Unset, coalesce, mirror


class Configuration:
    __introspectable__ = (
        "parsers",
        "helper",
        "help_api",
        "invoke_auto",
        "discover",
        "colorful",
        "fancy",
        "prog",
    )

    def __init__(
            self,
            *,
            parsers=Unset,
            helper=Unset,
            help_api=Unset,
            invoke_auto=False,
            discover=(),
            colorful=True,
            fancy=False,
            prog=Unset,
    ):
        if not isinstance(parsers := coalesce(parsers, ParserRegistry()), ParserRegistry):
            raise TypeError("Configuration 'parsers' must be a parser registry")
        if not callable(getattr(helper := coalesce(helper, Helper()), "__display_help__", None)):
            raise TypeError("Configuration 'helper' must implement __display_help__")
        if not isinstance(help_api := coalesce(help_api, HelpApi), type | None):
            raise TypeError("Configuration 'help_api' must be a class or None")
        if isinstance(discover, str):
            raise TypeError("Configuration 'discover' must be a sequence of module-glob strings")
        discover = tuple(discover)
        if not all(isinstance(pattern, str) for pattern in discover):
            raise TypeError("Configuration 'discover' must be a sequence of module-glob strings")
        if not isinstance(prog, str | Unset):
            raise TypeError("Configuration 'prog' must be a string")

        self._parsers = parsers
        self._helper = helper
        self._help_api = help_api
        self._invoke_auto = bool(invoke_auto)
        self._discover = discover
        self._colorful = bool(colorful)
        self._fancy = bool(fancy)
        self._prog = prog

    parsers = property(lambda self: self._parsers)
    helper = property(lambda self: self._helper)
    help_api = property(lambda self: self._help_api)
    invoke_auto = mirror("invoke_auto")
    discover = mirror("discover")
    colorful = mirror("colorful")
    fancy = mirror("fancy")
    prog = mirror("prog")

    def options(self):
        """Rendering options for faults.render()."""
        return {"colorful": self._colorful, "fancy": self._fancy} | (
            {"prog": self._prog} if self._prog is not Unset else {}
        )

    def __rich_repr__(self):
        for name in self.__introspectable__:
            yield name, getattr(self, name)

    def __repr__(self):
        return f"Configuration({', '.join('%s=%r' % pair for pair in self.__rich_repr__())})"


__all__ = (
    "Configuration",
)
