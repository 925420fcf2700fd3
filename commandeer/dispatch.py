"""
Commandeer dispatcher: API/command resolution, invocation and escalation.

Flow of run() for one chunk of tokens
1. Yield once, then honour the cancellation object (raise CancelledError).
2. Tokenize. A malformed token escalates without any API context.
3. Select the API:
   • exactly one exported → it, no token consumed;
   • no keyless token → the default-flagged API, else the first exported;
   • otherwise the first keyless token names it (declared name, then class
     name, case-insensitively); no match escalates.
4. Construct the API and bind its own argument slots.
5. Select the command:
   • one exported API with one command → it, no token consumed;
   • the next keyless token names a command → it, the token is consumed;
   • otherwise the default-flagged command, else the first one.
6. Assemble the call parameters and invoke; the result is normalized to an
   exit code (int → itself, anything else → 0).
7. Release the API instance (aclose() or close()) on every path.

Binding, resolution and invocation failures go through escalate(), which asks,
in order: the API's __handle_error__ (only with an exception), the API's
__display_help__, the designated help API when it is exported, the helper.
ConfigurationError is never escalated.

run_multi() splits the tokens on bare "-" delimiters and runs the chunks one
after the other, stopping at the first non-zero exit code. The break is logged
when later chunks are skipped.

Without API classes, the modules matching Configuration.discover are scanned
(metadata.discover()); the designated help API joins what is found.
"""
import asyncio
import inspect
import logging
import shlex
import sys
from collections.abc import Sequence

from .binding import Cursor, bind, bind_parameter
from .config import Configuration
from .context import CliApiContext, activate, deactivate
from .faults import ConfigurationError, MalformedTokenError
from .metadata import ApiDescriptor, discover
from .tokens import CliArguments
from .utils import Unset, coalesce

logger = logging.getLogger(__name__)


def _tokens(args, /):
    if args is None:
        return list(sys.argv[1:])
    if isinstance(args, str):
        return shlex.split(args)
    if not isinstance(args, Sequence) or not all(isinstance(token, str) for token in args):
        raise TypeError("arguments must be a string or a sequence of strings")
    return list(args)


def _candidates(apis, config, /):
    """Exported API classes, discovered through config.discover when none are given."""
    if apis or not config.discover:
        return apis
    if found := discover(*config.discover):
        logger.debug("discovered cli apis: %s", ", ".join(cls.__name__ for cls in found))
        if config.help_api is not None:
            found += (config.help_api,)
    return found


def _exported(apis, /):
    if not apis:
        raise ConfigurationError("no cli apis exported")
    return tuple(map(ApiDescriptor.of, apis))


def _configuration(config, /):
    if not isinstance(config := coalesce(config, Configuration()), Configuration):
        raise TypeError("config must be a Configuration")
    return config


async def _result(callable, context, /):
    result = callable(context)
    if inspect.isawaitable(result):
        result = await result
    return result if isinstance(result, int) and not isinstance(result, bool) else 1


async def escalate(context, /):
    """
    Turn a failed or unresolved run into an exit code (see module docs).
    """
    instance, descriptor = context.api, context.descriptor
    if instance is not None and descriptor.is_error_handler and context.exception is not None:
        logger.debug("escalating to the error handler of api %r", descriptor.name)
        return await _result(instance.__handle_error__, context)
    if instance is not None and descriptor.is_help_provider:
        logger.debug("escalating to the help provider of api %r", descriptor.name)
        return await _result(instance.__display_help__, context)
    help_api = context.config.help_api
    if help_api is not None and any(exported.type is help_api for exported in context.apis):
        logger.debug("escalating to the help api")
        return await _result(help_api().__display_help__, context)
    helper = context.config.helper
    if context.exception is not None and callable(getattr(helper, "__handle_error__", None)):
        return await _result(helper.__handle_error__, context)
    return await _result(helper.__display_help__, context)


def _select_api(context, /):
    """Return (descriptor or None, consumed token count)."""
    apis, keyless = context.apis, context.arguments.keyless
    if len(apis) == 1:
        return apis[0], 0
    if not keyless:
        return next((descriptor for descriptor in apis if descriptor.default), apis[0]), 0
    return context.lookup(keyless[0]), 1


def _select_method(context, cursor, /):
    descriptor, keyless = context.descriptor, context.arguments.keyless
    if not descriptor.methods:
        return None
    if len(context.apis) == 1 and len(descriptor.methods) == 1:
        return descriptor.default_method
    if cursor.position < len(keyless) and (command := descriptor.lookup(keyless[cursor.position])) is not None:
        cursor.base += 1
        return command
    return descriptor.default_method


def _assemble(context, cursor, cancellation, /):
    """
    Build (args, kwargs) for the selected command and record the values.
    """
    config, arguments = context.config, context.arguments
    values, args, kwargs = [], [], {}
    for parameter, slot in context.method.signature:
        if slot is not None:
            value = bind_parameter(slot, arguments, cursor, config.parsers)
        elif config.invoke_auto:
            if parameter.name == "cancellation":
                value = cancellation
            elif parameter.kind is not parameter.POSITIONAL_ONLY:
                continue
            elif parameter.default is not parameter.empty:
                value = parameter.default
            else:
                raise ConfigurationError(
                    f"command {context.method.name!r}: positional-only parameter {parameter.name!r} needs a default"
                )
        elif parameter.default is not parameter.empty:
            value = parameter.default
        elif parameter.annotation is not parameter.empty and isinstance(parameter.annotation, type):
            value = parameter.annotation()
        else:
            value = None
        values.append(value)
        if parameter.kind is parameter.POSITIONAL_ONLY:
            args.append(value)
        else:
            kwargs[parameter.name] = value
    context.parameters = tuple(values)
    return args, kwargs


async def _dispose(instance, /):
    if callable(close := getattr(instance, "aclose", None)):
        await close()
    elif callable(close := getattr(instance, "close", None)):
        result = close()
        if inspect.isawaitable(result):
            await result


async def _execute(context, cursor, cancellation, /):
    instance, descriptor, parsers = context.api, context.descriptor, context.config.parsers

    try:
        bind(instance, descriptor.properties.values(), context.arguments, cursor, parsers)
    except ConfigurationError:
        raise
    except Exception as exception:
        context.exception = exception
        return await escalate(context)
    cursor.rebase()

    context.method = _select_method(context, cursor)
    if context.method is None:
        logger.debug("api %r exports no command", descriptor.name)
        return await escalate(context)
    logger.debug("dispatching %s.%s", descriptor.name, context.method.name)

    try:
        args, kwargs = _assemble(context, cursor, cancellation)
    except ConfigurationError:
        raise
    except Exception as exception:
        context.exception = exception
        return await escalate(context)

    try:
        return await context.method.invoke(instance, args, kwargs)
    except Exception as exception:
        logger.debug("command %s.%s raised %r", descriptor.name, context.method.name, exception)
        context.exception = exception
        return await escalate(context)


async def _dispatch(context, args, cancellation, /):
    try:
        context.arguments = CliArguments(args)
    except MalformedTokenError as exception:
        context.exception = exception
        return await escalate(context)

    descriptor, consumed = _select_api(context)
    if descriptor is None:
        logger.debug("no api matches %r", context.arguments.keyless[0])
        return await escalate(context)

    context.descriptor = descriptor
    context.api = descriptor.type()
    try:
        return await _execute(context, Cursor(consumed), cancellation)
    finally:
        await _dispose(context.api)


async def run(args, /, *apis, config=Unset, cancellation=None):
    """
    Dispatch one chunk of tokens to the exported APIs; return the exit code.

    Parameters
    - args: sequence of tokens, a command-line string, or None for sys.argv[1:].
    - apis: the exported @api() classes.
    - config: Configuration (a default one when Unset).
    - cancellation: object with is_set(), checked once before anything runs.
    """
    await asyncio.sleep(0)
    if cancellation is not None and cancellation.is_set():
        raise asyncio.CancelledError("cli run cancelled before dispatch")

    config = _configuration(config)
    context = CliApiContext(_exported(_candidates(apis, config)), config)
    token = activate(context)
    try:
        return await _dispatch(context, _tokens(args), cancellation)
    finally:
        deactivate(token)


def split(args, /):
    """
    Split tokens into chunks on bare "-" tokens. A "-" directly following a
    "--name" key is that key's value, not a delimiter. Empty chunks are kept.
    """
    chunks, value = [[]], False
    for token in args:
        if token == "-" and not value:
            chunks.append([])
            continue
        chunks[-1].append(token)
        value = token.startswith("--") and len(token) > 2
    return chunks


async def run_multi(args=None, /, *apis, config=Unset, cancellation=None):
    """
    Run every dash-delimited chunk in order; the first non-zero exit code
    stops the run and is returned. Without any token at all, help is shown.
    """
    config = _configuration(config)
    apis = _candidates(apis, config)
    if not (tokens := _tokens(args)):
        context = CliApiContext(_exported(apis), config)
        token = activate(context)
        try:
            return await escalate(context)
        finally:
            deactivate(token)

    chunks = split(tokens)
    for index, chunk in enumerate(chunks, 1):
        if not chunk:
            logger.warning("skipping empty arguments chunk #%d", index)
            continue
        if code := await run(chunk, *apis, config=config, cancellation=cancellation):
            if any(chunks[index:]):
                logger.warning("break in arguments chunk #%d with exit code %d", index, code)
            return code
    return 0


def invoke(args=None, /, *apis, **options):
    """
    Synchronous entry point: run_multi() inside asyncio.run().

        sys.exit(invoke(None, DemoApi, HelpApi))
    """
    return asyncio.run(run_multi(args, *apis, **options))


__all__ = (
    "run",
    "run_multi",
    "split",
    "escalate",
    "invoke",
)
