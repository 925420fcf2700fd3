"""
Run-scoped dispatch context.

A CliApiContext is created by every dispatcher run and describes how far the
run got: the tokenized arguments, the selected API and command, the bound call
parameters and the captured exception. Error handlers and help providers
receive it.

current() returns the context of the run in progress. It is backed by a
ContextVar that the dispatcher sets for the span of one run and resets
afterwards; runs are expected one at a time per thread of control.
"""
import contextvars

_current = contextvars.ContextVar("commandeer.context")


class CliApiContext:
    """
    Mutable record of one dispatcher run.

    Attributes
    - apis: tuple of exported ApiDescriptor objects.
    - config: the Configuration of the run.
    - arguments: the CliArguments view (None when tokenizing failed).
    - descriptor: the selected ApiDescriptor, api: its instance.
    - method: the selected MethodDescriptor.
    - parameters: the bound call values, in declaration order.
    - exception: the captured fault, None for a plain resolution miss.
    """

    def __init__(self, apis, config, /):
        self.apis = tuple(apis)
        self.config = config
        self.arguments = None
        self.descriptor = None
        self.api = None
        self.method = None
        self.parameters = ()
        self.exception = None

    def lookup(self, name, /):
        """Find an exported API by declared name or class name, case-insensitively."""
        name = name.casefold()
        for descriptor in self.apis:
            if descriptor.name.casefold() == name:
                return descriptor
        for descriptor in self.apis:
            if descriptor.type.__name__.casefold() == name:
                return descriptor
        return None

    def __rich_repr__(self):
        yield "apis", tuple(descriptor.name for descriptor in self.apis)
        yield "api", getattr(self.descriptor, "name", None)
        yield "method", getattr(self.method, "name", None)
        yield "parameters", self.parameters
        yield "exception", self.exception

    def __repr__(self):
        return f"CliApiContext({', '.join('%s=%r' % pair for pair in self.__rich_repr__())})"


def current():
    """Return the context of the run in progress, or None."""
    return _current.get(None)


def activate(context, /):
    """Make context current; returns the token to pass to deactivate()."""
    return _current.set(context)


def deactivate(token, /):
    _current.reset(token)


__all__ = (
    "CliApiContext",
    "current",
)
