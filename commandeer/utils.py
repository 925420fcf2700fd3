"""
Commandeer utilities (small building blocks shared by every layer)

Overview
- UnsetType / Unset
  • Sentinel for "not provided" when None is a meaningful value (nullable slots,
    defaults that are legitimately None).
  • Falsey, printable as "Unset", sealed, one instance per process.

- coalesce(value, default=None)
  • Materialize Unset into a concrete default; every other value (None included)
    passes through untouched.

- rename(callable, name) / @rename("name")
  • Give generated wrappers stable __name__/__qualname__ for tracebacks and help.

- mirror("attr")
  • Read-only property over a private "_attr" backing field. Containers are
    handed out as fresh copies so descriptors stay immutable from the outside.

- mglob(pattern)
  • Expand "pkg.**.apis" style module globs into importable module names.
    Used by metadata.discover() to locate exported APIs.

Quick examples
    >>> coalesce(Unset, "fallback")
    'fallback'
    >>> coalesce(None, "fallback") is None
    True
    >>> mglob("commandeer.help*")
    ['commandeer.helper']
"""
import builtins
import functools
import importlib
import pkgutil
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Sentinel type for values that were never provided.

    The single instance, Unset, is falsey, prints as "Unset" and cannot be
    subclassed. Use it as a parameter default whenever None is a value a
    caller may pass on purpose.
    """

    def __or__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Return object unless it is Unset, in which case return default.

    Falsey values (None, 0, "", []) are values, not absence, and are kept.
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Assign __name__/__qualname__ to a callable, or build a decorator doing so.

    Forms
    - rename(callable, name) -> callable (renamed in place)
    - rename(name) -> decorator

    Raises
    - TypeError on wrong arity, a non-callable target, a non-string name, or a
      callable whose name attributes are read-only (built-ins).
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _detach(object):
    """
    Copy container values recursively (tuples for sequences, dicts for mappings,
    frozensets for sets); leave every other object as is.
    """
    if isinstance(object, Sequence) and not isinstance(object, str | bytes):
        return tuple(map(_detach, object))
    elif isinstance(object, Mapping):
        return {key: _detach(value) for key, value in object.items()}
    elif isinstance(object, Set):
        return frozenset(map(_detach, object))
    return object


def mirror(name, /):
    """
    Build a read-only property that exposes self._{name}.

    Containers are detached on every read, so callers cannot mutate the
    backing field through the property.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _detach(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def _translate(segment):
    """
    Translate one glob segment into a regex snippet that never crosses a dot.

    Supported: '*', '?', '[...]', '[!...]' and '\\x' escapes.
    """
    parts = []
    index, length = 0, len(segment)
    while index < length:
        char = segment[index]
        if char == "\\" and index + 1 < length:
            parts.append(re.escape(segment[index + 1]))
            index += 2
            continue
        if char == "*":
            parts.append(r"[^.]*")
        elif char == "?":
            parts.append(r"[^.]")
        elif char == "[":
            start = index + 1
            negated = ""
            if start < length and segment[start] in "!^":
                negated, start = "^", start + 1
            end = segment.find("]", start)
            if end == -1:
                parts.append(r"\[")
            else:
                parts.append(f"[{negated}{segment[start:end]}]")
                index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return "".join(parts)


@functools.cache
def _compile(pattern):
    # '**' spans zero or more whole segments.
    body = []
    for position, segment in enumerate(pattern.split(".")):
        if segment == "**":
            body.append(r"(?:\.[A-Za-z_]\w*)*")
        else:
            body.append(("" if not position else r"\.") + _translate(segment))
    return re.compile("".join(body))


def mglob(source, /):
    """
    Expand a dot-separated module glob into fully-qualified module names.

    Rules
    - The pattern must start with at least one concrete package segment; that
      prefix is imported and its sub-modules are walked.
    - A pattern without wildcards is returned as is.
    - Results are sorted; a prefix that cannot be imported yields [].

    Examples
    - "app.apis.*"      → direct children of app.apis
    - "app.**.apis"     → every "apis" module below app
    """
    if not isinstance(source, str):
        raise TypeError("mglob() argument must be a string")
    elif not (source := source.strip()):
        raise ValueError("mglob() argument must be a non-empty string")

    if re.fullmatch(r"(?!\d)\w+(\.(?!\d)\w+)*", source):
        return [source]

    prefixes = []
    for segment in source.split("."):
        if not re.fullmatch(r"(?!\d)\w+", segment):
            break
        prefixes.append(segment)

    if not prefixes:
        raise ValueError("mglob() pattern must start with a concrete package segment")

    try:
        package = importlib.import_module(prefix := ".".join(prefixes))
    except ImportError:
        return []

    pattern = _compile(source)
    matches = {prefix} if pattern.fullmatch(prefix) else set()
    for module in pkgutil.walk_packages(getattr(package, "__path__", ()), prefix + "."):
        if pattern.fullmatch(module.name):
            matches.add(module.name)
    return sorted(matches)


Unset = UnsetType()
"""
The "not provided" sentinel. Distinct from None, falsey, and unique.
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "mglob",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
