r"""
Commandeer metadata: declarations and the immutable descriptor model.

Declarations
- @api(name, default=, title=, descr=)
  • Marks a class as a CLI API (a command group). The name defaults to the
    lower-cased class name; the class must be constructible without arguments.
- @method(name, default=, title=, descr=, stdin=, stdin_required=, stdout=, stderr=)
  • Marks a function of an API class as a command. Instance methods,
    staticmethod and classmethod are accepted (apply @method under them or
    over them, both work).
- @exit_code(code, descr)
  • Documents an exit code of a command; stackable.
- Annotated[T, Argument(...)]
  • Declares an argument slot on a method parameter (Host.PARAMETER) or as a
    class-level annotation of an API or argument-holder (Host.PROPERTY).
  • Argument("name") names the slot, Argument(0) makes it keyless with the
    given offset, Argument() names it after the attribute/parameter.
- Arguments
  • Base class of argument-holders. A slot typed with a holder is expanded
    into the holder's own slots, bound as if flattened into the parent.

Descriptors (built once per API type, cached, read-only)
- ApiDescriptor.of(cls) → ApiDescriptor
  • name, default, type, methods, properties, is_error_handler, is_help_provider
- MethodDescriptor
  • name, default, parameters, signature, exit_codes, stdin, stdout, stderr, asynchronous
- ArgumentDescriptor
  • name, host, kind, type, array, keyless, offset, required, nullable, json,
    parser, properties (holder sub-tree)

Kinds
- bool → Kind.FLAG; str or an array of str → Kind.VALUE; anything else →
  Kind.OBJECT (JSON decoded, or expanded when it is an argument-holder).
- list[T], tuple[T, ...], set[T], frozenset[T] and Sequence[T] are arrays of T.
- T | None is nullable. Required means no default, not nullable, not a flag.

Fatal authoring mistakes raise ConfigurationError while descriptors are built:
abstract or non-constructible holders, cyclic holders, read-only property
slots, keyless flags, variadic argument parameters, duplicated names.
"""
import builtins
import collections.abc
import enum
import functools
import importlib
import inspect
import operator
import re
import types
import typing
from collections.abc import Iterable
from types import MappingProxyType

from rich.text import Text

from .faults import ConfigurationError
from .utils import *


class SpecType(type):
    """
    Metaclass shared by declarations and descriptors.

    - __typename__ is derived from the class name (camel-case split with
      hyphens) and used in error messages.
    - Every name in __introspectable__ becomes a read-only property over "_name".
    - __repr__/__rich_repr__ show __displayable__ (or __introspectable__).
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join(map(functools.partial(operator.mod, '%s=%r'), self.__rich_repr__()))})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


class Host(enum.Enum):
    PROPERTY = "property"
    PARAMETER = "parameter"


class Kind(enum.Enum):
    FLAG = "flag"
    VALUE = "value"
    OBJECT = "object"


def _sanitize_texts(cls, metadata, /):
    """
    Validate the shared 'title'/'descr' fields (Unset or non-empty str/Text).
    Strings are trimmed in place.
    """
    for field in ("title", "descr"):
        if not isinstance(value := metadata[field], str | Text | Unset):
            raise TypeError(f"{cls.__typename__} '{field}' must be a string")
        elif isinstance(value, str):
            if not (value := value.strip()):
                raise ValueError(f"{cls.__typename__} '{field}' cannot be empty")
            metadata[field] = value


def _sanitize_command(cls, metadata, /):
    if not isinstance(name := metadata["name"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif isinstance(name, str) and not re.fullmatch(r"[^\W_][\w-]*", name):
        raise ValueError(f"{cls.__typename__} 'name' must be a valid command name")
    metadata["default"] = bool(metadata["default"])
    _sanitize_texts(cls, metadata)


def _sanitize_argument(cls, metadata, /):
    """
    Validate Argument metadata in place.

    - name: Unset, a string (dash prefixes removed) or a non-negative integer
      (moved to 'offset', making the slot keyless).
    - parser: Unset or callable (name, type, token) -> value.
    - validators: iterable of callables, normalized to a tuple.
    """
    match metadata["name"]:
        case bool():
            raise TypeError(f"{cls.__typename__} name or offset must be a string or an integer")
        case int() as offset:
            if offset < 0:
                raise ValueError(f"{cls.__typename__} keyless offset must be a non-negative integer")
            metadata["name"], metadata["offset"] = Unset, offset
        case str() as name:
            if not re.fullmatch(r"[^\W\d_][\w.-]*", name := name.strip().lstrip("-")):
                raise ValueError(f"{cls.__typename__} name must be a valid argument name")
            metadata["name"] = name
        case UnsetType():
            pass
        case _:
            raise TypeError(f"{cls.__typename__} name or offset must be a string or an integer")

    metadata["json"] = bool(metadata["json"])

    if not (metadata["parser"] is Unset or callable(metadata["parser"])):
        raise TypeError(f"{cls.__typename__} 'parser' must be callable")

    if not isinstance(example := metadata["example"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'example' must be a string")
    elif isinstance(example, str) and not example.strip():
        raise ValueError(f"{cls.__typename__} 'example' cannot be empty")

    if not isinstance(validators := metadata["validators"], Iterable):
        raise TypeError(f"{cls.__typename__} 'validators' must be iterable")
    if not all(map(callable, validators := tuple(validators))):
        raise TypeError(f"{cls.__typename__} 'validators' must contain callables only")
    metadata["validators"] = validators

    _sanitize_texts(cls, metadata)


class Argument(metaclass=SpecType):
    """
    Argument slot declaration, used inside typing.Annotated.

        message: Annotated[str, Argument("message", descr="text to print")]
        numbers: Annotated[list[int], Argument(0, json=True)]
    """

    __introspectable__ = (
        "name",
        "offset",
        "json",
        "parser",
        "title",
        "descr",
        "example",
        "validators",
    )

    def __init__(
            self,
            name=Unset,
            /,
            *,
            json=False,
            parser=Unset,
            title=Unset,
            descr=Unset,
            example=Unset,
            validators=(),
    ):
        metadata = {
            "name": name,
            "offset": Unset,
            "json": json,
            "parser": parser,
            "title": title,
            "descr": descr,
            "example": example,
            "validators": validators,
        }
        _sanitize_argument(type(self), metadata)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)

    @property
    def keyless(self):
        return self._offset is not Unset


class Arguments:
    """
    Base class of argument-holders.

    Declare slots as annotated class attributes; a holder may implement
    __validate__(self) returning (argument, message) failures.
    """

    def __validate__(self):
        return ()


class ApiSpec(metaclass=SpecType):
    __introspectable__ = ("name", "default", "title", "descr")

    def __init__(self, name=Unset, /, *, default=False, title=Unset, descr=Unset):
        metadata = {"name": name, "default": default, "title": title, "descr": descr}
        _sanitize_command(type(self), metadata)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)


class MethodSpec(metaclass=SpecType):
    __introspectable__ = ("name", "default", "title", "descr", "stdin", "stdin_required", "stdout", "stderr")

    def __init__(
            self,
            name=Unset,
            /,
            *,
            default=False,
            title=Unset,
            descr=Unset,
            stdin=Unset,
            stdin_required=False,
            stdout=Unset,
            stderr=Unset,
    ):
        metadata = {
            "name": name,
            "default": default,
            "title": title,
            "descr": descr,
            "stdin": stdin,
            "stdin_required": bool(stdin_required),
            "stdout": stdout,
            "stderr": stderr,
        }
        _sanitize_command(type(self), metadata)
        for field in ("stdin", "stdout", "stderr"):
            if not isinstance(metadata[field], str | Unset):
                raise TypeError(f"{type(self).__typename__} '{field}' must be a string")
        for name, object in metadata.items():
            setattr(self, "_" + name, object)


def api(*args, **kwargs):
    """
    Class decorator declaring a CLI API; usable bare (@api) or with metadata.

        @api("demo", title="Demo API")
        class DemoApi: ...
    """
    if len(args) == 1 and not kwargs and isinstance(args[0], type):
        return api()(args[0])

    spec = ApiSpec(*args, **kwargs)

    @rename("api")
    def wrapper(cls, /):
        if not isinstance(cls, type):
            raise TypeError("@api() must be applied to a class")
        if "__cliapi__" in cls.__dict__:
            raise TypeError("@api() must be applied only once")
        cls.__cliapi__ = spec
        return cls

    return wrapper


def _underlying(target, /):
    function = getattr(target, "__func__", target)
    if not inspect.isfunction(function):
        raise TypeError("command decorators must be applied to a function, staticmethod or classmethod")
    return function


def method(*args, **kwargs):
    """
    Decorator declaring a command; usable bare (@method) or with metadata.

        @method("echo", default=True)
        def echo(self, message: Annotated[str, Argument()]) -> int: ...
    """
    if len(args) == 1 and not kwargs and not isinstance(args[0], str | UnsetType):
        return method()(args[0])

    spec = MethodSpec(*args, **kwargs)

    @rename("method")
    def wrapper(target, /):
        function = _underlying(target)
        if "__climethod__" in function.__dict__:
            raise TypeError("@method() must be applied only once")
        function.__climethod__ = spec
        return target

    return wrapper


def exit_code(code, descr, /):
    """
    Decorator documenting one exit code of a command (stackable).
    """
    if not isinstance(code, int) or isinstance(code, bool):
        raise TypeError("@exit_code() code must be an integer")
    if not isinstance(descr, str) or not (descr := descr.strip()):
        raise TypeError("@exit_code() description must be a non-empty string")

    @rename("exit_code")
    def wrapper(target, /):
        codes = _underlying(target).__dict__.setdefault("__exitcodes__", {})
        if code in codes:
            raise ValueError(f"@exit_code() code {code} is documented twice")
        codes[code] = descr
        return target

    return wrapper


_ARRAYS = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    collections.abc.Sequence: tuple,
    collections.abc.MutableSequence: list,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
    collections.abc.Collection: tuple,
    collections.abc.Iterable: tuple,
}


def _unwrap(annotation, /):
    """
    Peel Annotated and Optional layers off a type hint.

    Returns (type, argument spec or None, nullable).
    """
    spec, nullable = None, False
    while True:
        origin = typing.get_origin(annotation)
        if origin is typing.Annotated:
            annotation, *extras = typing.get_args(annotation)
            spec = next((extra for extra in extras if isinstance(extra, Argument)), spec)
        elif origin in (typing.Union, types.UnionType):
            members = [member for member in typing.get_args(annotation) if member is not types.NoneType]
            nullable = nullable or len(members) < len(typing.get_args(annotation))
            if len(members) != 1:
                return typing.Union[tuple(members)], spec, nullable
            annotation, = members
        else:
            return annotation, spec, nullable


def _element(annotation, /):
    """
    Return (container factory, element type) for array hints, else (None, annotation).
    """
    origin = typing.get_origin(annotation) or annotation
    try:
        container = _ARRAYS.get(origin)
    except TypeError:
        return None, annotation
    if container is None:
        return None, annotation
    members = typing.get_args(annotation)
    if origin is tuple:
        if not members:
            return container, typing.Any
        if len(members) != 2 or members[1] is not Ellipsis:
            return None, annotation
    return container, members[0] if members else typing.Any


def _holder(annotation, /):
    return (
        typing.get_origin(annotation) is None
        and isinstance(annotation, type)
        and issubclass(annotation, Arguments)
    )


def _constructible(cls, /):
    if inspect.isabstract(cls):
        return False
    try:
        inspect.signature(cls).bind()
    except TypeError:
        return False
    except ValueError:
        pass
    return True


class ArgumentDescriptor(metaclass=SpecType):
    """
    One bindable slot.

    'attribute' is the Python attribute/parameter name the value is written
    to; 'name' is the CLI name (no dashes). For argument-holders 'properties'
    maps the holder's own slots, which share the owner of this slot.
    """

    __introspectable__ = (
        "name",
        "attribute",
        "host",
        "kind",
        "type",
        "array",
        "keyless",
        "offset",
        "required",
        "nullable",
        "json",
        "parser",
        "title",
        "descr",
        "example",
        "validators",
        "holder",
        "properties",
    )
    __displayable__ = ("name", "host", "kind", "type", "keyless", "required")

    def __init__(self, owner, host, attribute, annotation, default, /, *, visited=frozenset()):
        annotation, spec, nullable = _unwrap(annotation)
        spec = spec or Argument()
        container, element = _element(annotation)
        typename = type(self).__typename__

        self._owner = owner
        self._attribute = attribute
        self._name = coalesce(spec.name, attribute)
        self._host = host
        self._array = container
        self._type = element
        self._nullable = nullable
        self._default = default
        self._keyless = spec.keyless
        self._offset = spec.offset
        self._json = spec.json
        self._parser = spec.parser
        self._title = spec.title
        self._descr = spec.descr
        self._example = spec.example
        self._validators = spec.validators
        self._holder = container is None and _holder(element)
        self._properties = MappingProxyType({})

        if self._holder:
            self._kind = Kind.OBJECT
            if self._keyless:
                raise ConfigurationError(f"{typename} {attribute!r} holds arguments and cannot be keyless")
            if not _constructible(element):
                raise ConfigurationError(
                    f"{typename} {attribute!r} holder {element.__name__!r} must be constructible without arguments"
                )
            if element in visited:
                raise ConfigurationError(f"{typename} {attribute!r} holder {element.__name__!r} embeds itself")
            self._properties = MappingProxyType({
                slot.name: slot for slot in _properties(owner, element, visited | {element})
            })
        elif container is not None and _holder(element):
            raise ConfigurationError(f"{typename} {attribute!r} cannot be an array of argument holders")
        elif element is bool and container is None:
            self._kind = Kind.FLAG
            if self._keyless:
                raise ConfigurationError(f"{typename} {attribute!r} is a flag and cannot be keyless")
        elif element is str:
            self._kind = Kind.VALUE
        else:
            self._kind = Kind.OBJECT

        self._required = (
            not self._holder
            and self._kind is not Kind.FLAG
            and not nullable
            and default is Unset
        )

    @property
    def owner(self):
        return self._owner

    @property
    def default(self):
        return self._default

    def flatten(self):
        """Yield this slot, or the leaves of its holder sub-tree."""
        if not self._holder:
            yield self
            return
        for slot in self._properties.values():
            yield from slot.flatten()

    def syntax(self):
        """Usage fragment, e.g. '--name <value>', '[-flag]' or '<name> ...'."""
        if self._kind is Kind.FLAG:
            return f"[-{self._name}]"
        label = f"<{self._name}>" if self._keyless else f"--{self._name} <{coalesce(self._example, 'value')}>"
        if self._array is not None:
            label += " ..."
        return label if self._required else f"[{label}]"


def _properties(owner, cls, visited, /):
    """
    Build the Host.PROPERTY slots of an API or holder class, in declaration order.
    """
    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except NameError as exception:
        raise ConfigurationError(f"cannot resolve the annotations of {cls.__name__!r}: {exception}") from None

    slots = []
    for attribute, hint in hints.items():
        if attribute.startswith("_") or typing.get_origin(hint) is typing.ClassVar:
            continue
        annotation, marker, _ = _unwrap(hint)
        if marker is None and not _holder(_element(annotation)[1]):
            continue
        static = inspect.getattr_static(cls, attribute, Unset)
        if isinstance(static, property):
            if static.fset is None:
                raise ConfigurationError(f"argument {attribute!r} of {cls.__name__!r} is a read-only property")
            static = Unset
        slots.append(ArgumentDescriptor(owner, Host.PROPERTY, attribute, hint, static, visited=visited))
    return slots


def _normalize(result, /):
    return result if isinstance(result, int) and not isinstance(result, bool) else 0


async def _invoke_coroutine(callable, args, kwargs, /):
    return _normalize(await callable(*args, **kwargs))


async def _invoke_function(callable, args, kwargs, /):
    result = callable(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return _normalize(result)


class MethodDescriptor(metaclass=SpecType):
    """
    One invocable command of an API.

    'signature' lists (parameter, slot) pairs for every declared parameter
    except self/cls, slot being None for non-argument parameters; annotations
    on the parameters are resolved. 'parameters' maps argument names to slots.
    """

    __introspectable__ = (
        "name",
        "attribute",
        "default",
        "title",
        "descr",
        "stdin",
        "stdin_required",
        "stdout",
        "stderr",
        "exit_codes",
        "asynchronous",
        "parameters",
    )
    __displayable__ = ("name", "default", "asynchronous", "parameters")

    def __init__(self, owner, attribute, target, /):
        function = _underlying(target)
        spec = function.__climethod__
        typename = type(self).__typename__

        self._owner = owner
        self._attribute = attribute
        self._function = function
        self._name = coalesce(spec.name, function.__name__.lower())
        self._default = spec.default
        self._title = spec.title
        self._descr = coalesce(spec.descr, inspect.getdoc(function) or Unset)
        self._stdin = spec.stdin
        self._stdin_required = spec.stdin_required
        self._stdout = spec.stdout
        self._stderr = spec.stderr
        self._exit_codes = MappingProxyType(dict(sorted(function.__dict__.get("__exitcodes__", {}).items())))
        self._asynchronous = inspect.iscoroutinefunction(function)
        self._adapter = _invoke_coroutine if self._asynchronous else _invoke_function

        try:
            hints = typing.get_type_hints(function, include_extras=True)
        except NameError as exception:
            raise ConfigurationError(f"cannot resolve the annotations of {function.__qualname__!r}: {exception}") from None

        parameters = list(inspect.signature(function).parameters.values())
        if not isinstance(target, staticmethod):
            parameters = parameters[1:]

        signature = []
        for parameter in parameters:
            parameter = parameter.replace(annotation=hints.get(parameter.name, parameter.annotation))
            annotation, marker, _ = _unwrap(parameter.annotation)
            slot = None
            if marker is not None or _holder(_element(annotation)[1]):
                if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
                    raise ConfigurationError(f"{typename} {function.__qualname__!r}: variadic parameters cannot be arguments")
                default = Unset if parameter.default is parameter.empty else parameter.default
                slot = ArgumentDescriptor(owner, Host.PARAMETER, parameter.name, parameter.annotation, default)
            signature.append((parameter, slot))
        self._signature = tuple(signature)

        named = {}
        for _, slot in signature:
            for leaf in () if slot is None else slot.flatten():
                if (key := leaf.name.casefold()) in named:
                    raise ConfigurationError(f"{typename} {function.__qualname__!r}: argument {leaf.name!r} is declared twice")
                named[key] = leaf
        self._parameters = MappingProxyType({slot.name: slot for _, slot in signature if slot is not None})

    @property
    def owner(self):
        return self._owner

    @property
    def signature(self):
        return self._signature

    def arguments(self):
        """API-level slots followed by this method's slots, holders flattened."""
        for slot in (*self._owner.properties.values(), *self._parameters.values()):
            yield from slot.flatten()

    def syntax(self):
        """
        One-line usage: required named, flags, optional named, then keyless
        arguments ordered by offset.
        """
        slots = list(self.arguments())
        named = [slot for slot in slots if not slot.keyless]
        ordered = (
            *(slot for slot in named if slot.required),
            *(slot for slot in named if slot.kind is Kind.FLAG),
            *(slot for slot in named if not slot.required and slot.kind is not Kind.FLAG),
            *sorted((slot for slot in slots if slot.keyless), key=lambda slot: slot.offset),
        )
        return " ".join((self._owner.name, self._name, *(slot.syntax() for slot in ordered)))

    def invoke(self, instance, args, kwargs, /):
        """
        Call the command on instance; returns a coroutine yielding the exit code.
        """
        return self._adapter(getattr(instance, self._attribute), args, kwargs)


class ApiDescriptor(metaclass=SpecType):
    """
    One exported API. Obtain instances through ApiDescriptor.of(cls).
    """

    __introspectable__ = (
        "name",
        "default",
        "title",
        "descr",
        "type",
        "methods",
        "properties",
        "is_error_handler",
        "is_help_provider",
    )
    __displayable__ = ("name", "default", "type", "methods")

    def __init__(self, cls, /):
        if not isinstance(spec := cls.__dict__.get("__cliapi__"), ApiSpec):
            raise ConfigurationError(f"type {cls.__name__!r} is not decorated with @api()")
        if not _constructible(cls):
            raise ConfigurationError(f"api {cls.__name__!r} must be constructible without arguments")

        self._type = cls
        self._name = coalesce(spec.name, cls.__name__.lower())
        self._default = spec.default
        self._title = spec.title
        self._descr = coalesce(spec.descr, inspect.getdoc(cls) or Unset)
        self._is_error_handler = builtins.callable(getattr(cls, "__handle_error__", None))
        self._is_help_provider = builtins.callable(getattr(cls, "__display_help__", None))
        self._properties = MappingProxyType({slot.name: slot for slot in _properties(self, cls, frozenset())})

        found = {}
        for base in reversed(cls.__mro__):
            for attribute, object in vars(base).items():
                function = getattr(object, "__func__", object)
                if inspect.isfunction(function) and "__climethod__" in function.__dict__:
                    found[attribute] = object
                elif attribute in found:
                    del found[attribute]

        methods = {}
        for attribute, object in found.items():
            descriptor = MethodDescriptor(self, attribute, object)
            if any(name.casefold() == descriptor.name.casefold() for name in methods):
                raise ConfigurationError(f"api {self._name!r} declares command {descriptor.name!r} twice")
            methods[descriptor.name] = descriptor
        self._methods = MappingProxyType(methods)

    @classmethod
    def of(cls, type, /):
        """Return the cached descriptor of an @api() decorated class."""
        if not isinstance(type, builtins.type):
            raise TypeError("ApiDescriptor.of() argument must be a class")
        return _describe(type)

    @property
    def default_method(self):
        """The default-flagged command, the first one when none is flagged."""
        methods = tuple(self._methods.values())
        return next((method for method in methods if method.default), methods[0] if methods else None)

    def lookup(self, name, /):
        """Find a command by name, case-insensitively."""
        return next((method for method in self._methods.values() if method.name.casefold() == name.casefold()), None)

    def __hash__(self):
        return hash(self._type)

    def __eq__(self, other):
        return isinstance(other, ApiDescriptor) and other._type is self._type


@functools.cache
def _describe(cls, /):
    return ApiDescriptor(cls)


def discover(*patterns):
    """
    Import the modules matching the module-glob patterns and return every
    constructible @api() class they define, in module order, excluding the
    built-in help, version and about APIs.
    """
    from .apis import AboutApi, VersionApi
    from .helper import HelpApi

    found = []
    for pattern in patterns:
        for name in mglob(pattern):
            module = importlib.import_module(name)
            for object in vars(module).values():
                if (
                    isinstance(object, type)
                    and object.__module__ == module.__name__
                    and "__cliapi__" in object.__dict__
                    and object not in (HelpApi, VersionApi, AboutApi)
                    and _constructible(object)
                    and object not in found
                ):
                    found.append(object)
    return tuple(found)


__all__ = (
    "Host",
    "Kind",
    "Argument",
    "Arguments",
    "ApiSpec",
    "MethodSpec",
    "ArgumentDescriptor",
    "MethodDescriptor",
    "ApiDescriptor",
    "api",
    "method",
    "exit_code",
    "discover",
)

del SpecType
