"""
Custom argument parser registry.

A parser is a callable (name, type, token) -> value, where name is the argument
name without dashes, type is the slot's value type (the element type for
array slots) and token is one raw string token.

Lookup for a target type tries, in order:
1. the exact type;
2. the generic origin of the type (a parser registered for list also serves
   list[int]);
3. the first registered class the type is a subclass of (registration order).

FileStream is a stock parser opening the token as a file path.
"""
import builtins
import os
import typing
from collections.abc import Mapping

from .utils import Unset


class ParserRegistry:
    """
    Mapping-like registry of custom parsers keyed by target type.

    Example
        >>> registry = ParserRegistry()
        >>> @registry.register(float)
        ... def parse_float(name, type, token):
        ...     return float(token.replace(",", "."))
    """

    def __init__(self, parsers=None, /):
        self._parsers = {}
        if parsers is not None:
            if not isinstance(parsers, Mapping):
                raise TypeError("ParserRegistry() argument must be a mapping")
            for type, parser in parsers.items():
                self.register(type, parser)

    def register(self, type, parser=Unset, /):
        """
        Register parser for type, or return a decorator doing so when parser is omitted.

        Registering a type again replaces its parser.
        """
        if parser is Unset:
            def wrapper(parser, /):
                self.register(type, parser)
                return parser
            return wrapper
        if not callable(parser):
            raise TypeError("ParserRegistry.register() parser must be callable")
        self._parsers[type] = parser
        return parser

    def unregister(self, type, /):
        self._parsers.pop(type, None)

    def lookup(self, type, /):
        """Return the parser serving type, or None."""
        try:
            return self._parsers[type]
        except (KeyError, TypeError):
            pass
        if (origin := typing.get_origin(type)) is not None and origin in self._parsers:
            return self._parsers[origin]
        if origin is None and isinstance(type, builtins.type):
            for candidate, parser in self._parsers.items():
                if isinstance(candidate, builtins.type) and issubclass(type, candidate):
                    return parser
        return None

    def __contains__(self, type):
        return self.lookup(type) is not None

    def __len__(self):
        return len(self._parsers)

    def __iter__(self):
        return iter(self._parsers)

    def copy(self):
        return type(self)(self._parsers)

    def __repr__(self):
        return f"ParserRegistry({self._parsers!r})"


class FileStream:
    """
    Parser opening the token as a file path; the command owns the stream.

        source: Annotated[TextIO, Argument(0, parser=FileStream())]
        target: Annotated[BinaryIO, Argument(parser=FileStream("wb", overwrite=True))]

    - mode: open() mode with exactly one of "r", "w", "x" and "a".
    - overwrite: whether a "w" mode may truncate an existing file.
    - unix_mode: permission bits for a file the parser creates (posix only).

    Failures are raised as ValueError, so they surface as unparsable values.
    """

    def __init__(self, mode="r", /, *, encoding=None, overwrite=False, unix_mode=None):
        if not isinstance(mode, str):
            raise TypeError("FileStream() mode must be a string")
        if len(set(mode)) != len(mode) or not set(mode) <= set("rwxabt+") or len(set(mode) & set("rwxa")) != 1:
            raise ValueError(f"FileStream() invalid mode {mode!r}")
        if not isinstance(encoding, str | None):
            raise TypeError("FileStream() encoding must be a string")
        if encoding is not None and "b" in mode:
            raise ValueError("FileStream() binary modes take no encoding")
        if unix_mode is not None and (not isinstance(unix_mode, int) or isinstance(unix_mode, bool)):
            raise TypeError("FileStream() unix_mode must be an integer")
        self._mode = mode
        self._encoding = encoding
        self._overwrite = bool(overwrite)
        self._unix_mode = unix_mode

    def __call__(self, name, type, token, /):
        path = os.path.expanduser(token)
        exists = os.path.exists(path)
        if exists and "w" in self._mode and not self._overwrite:
            raise ValueError(f"file {token!r} already exists and argument {name!r} may not overwrite it")
        try:
            stream = open(path, self._mode, encoding=self._encoding)
        except OSError as error:
            raise ValueError(f"cannot open {token!r}: {error.strerror or error}") from error
        if not exists and self._unix_mode is not None and os.name == "posix":
            os.chmod(path, self._unix_mode)
        return stream

    def __repr__(self):
        return f"FileStream({self._mode!r}, overwrite={self._overwrite!r})"


__all__ = (
    "ParserRegistry",
    "FileStream",
)
