"""
Argument binding: the coercion pipeline and the recursive binder.

Keyless tokens are consumed through a Cursor shared by the whole binding pass,
so nested argument-holders and their siblings never read the same token twice.
The cursor position is base + offset: the base skips the tokens that selected
the API and the method, the offset counts the tokens bound so far.

Coercion order for one slot (first applicable wins)
1. the slot-level parser of Argument(parser=...);
2. the registry parser for the slot's value type (element type for arrays);
3. flags: key presence;
4. str / arrays of str: tokens verbatim;
5. JSON decoding through pydantic, only when Argument(json=True).

Arrays consume every remaining keyless token, or every value of their key.
"""
import functools
import json
import logging
import typing

import pydantic

from .faults import (
    ConfigurationError,
    FlagValueError,
    InvalidValueError,
    MissingArgumentError,
    SingleValueError,
    UnparsableValueError,
    ValueRequiredError,
)
from .metadata import Kind
from .utils import Unset, coalesce

logger = logging.getLogger(__name__)


class Cursor:
    """
    Keyless cursor threaded through one binding pass.

    The offset only grows; rebase() folds it into the base once a stage
    (API-level binding, method selection) is complete.
    """

    def __init__(self, base=0, /):
        if base < 0:
            raise ValueError("Cursor() base must be a non-negative integer")
        self.base = base
        self.offset = 0

    @property
    def position(self):
        return self.base + self.offset

    def advance(self, count=1, /):
        if count < 0:
            raise ValueError("Cursor.advance() count must be a non-negative integer")
        self.offset += count

    def exhaust(self, length, /):
        """Move the cursor to the end of a keyless sequence of the given length."""
        self.offset = max(self.offset, length - self.base)

    def rebase(self):
        self.base, self.offset = self.position, 0

    def __repr__(self):
        return f"Cursor(base={self.base}, offset={self.offset})"


@functools.cache
def _adapter(type, /):
    return pydantic.TypeAdapter(type)


def _decode(slot, token, /):
    """
    Decode one token as JSON into the slot's value type; nullable scalar
    slots accept "null". A token that is not valid JSON gets a second chance
    as a JSON string, so plain words still reach str-compatible types.
    """
    adapter = _adapter(typing.Optional[slot.type] if slot.nullable and slot.array is None else slot.type)
    try:
        return adapter.validate_json(token)
    except pydantic.ValidationError as error:
        if not any(detail["type"] == "json_invalid" for detail in error.errors()):
            raise
    return adapter.validate_json(json.dumps(token))


def _convert(slot, token, parser, /):
    if parser is not None:
        try:
            return parser(slot.name, slot.type, token)
        except (ValueError, TypeError) as exception:
            raise UnparsableValueError(
                f"cannot parse {token!r} for argument {slot.name!r}: {exception}",
                argument=slot.name,
            ) from exception
    if slot.kind is Kind.VALUE:
        return token
    if not slot.json:
        raise ConfigurationError(
            f"argument {slot.name!r} of type {slot.type!r} needs json decoding, which is not enabled on it"
        )
    try:
        return _decode(slot, token)
    except ValueError as exception:
        raise UnparsableValueError(
            f"cannot decode {token!r} for argument {slot.name!r}: {exception}",
            argument=slot.name,
        ) from exception


def _parser(slot, parsers, /):
    if slot.parser is not Unset:
        return slot.parser
    if slot.kind is Kind.FLAG:
        return None
    return parsers.lookup(slot.type)


def resolve(slot, arguments, cursor, parsers, /):
    """
    Resolve one non-holder slot against a CliArguments view.

    Returns (found, value). When not found, value is False for flags, an empty
    container for arrays and Unset otherwise. Raises CliArgumentError
    subclasses on shape mismatches.
    """
    parser = _parser(slot, parsers)

    if slot.keyless:
        tokens = arguments.keyless
        if slot.array is not None:
            remaining = tokens[cursor.position:]
            cursor.exhaust(len(tokens))
            if not remaining:
                return False, slot.array()
            return True, slot.array(_convert(slot, token, parser) for token in remaining)
        if cursor.position >= len(tokens):
            return False, Unset
        token = tokens[cursor.position]
        cursor.advance()
        return True, _convert(slot, token, parser)

    key = arguments.get_existing_key(slot.name)

    if slot.kind is Kind.FLAG:
        if key is None:
            return False, False
        if not arguments.is_boolean(key):
            raise FlagValueError(f"argument '-{slot.name}' is a flag and takes no value", argument=slot.name)
        return True, True

    if key is None:
        return False, slot.array() if slot.array is not None else Unset
    if arguments.is_boolean(key):
        raise ValueRequiredError(f"argument '--{slot.name}' is not a flag, a value is required", argument=slot.name)

    values = arguments.all(key)
    if slot.array is not None:
        return True, slot.array(_convert(slot, value, parser) for value in values)
    if len(values) != 1:
        raise SingleValueError(
            f"argument '--{slot.name}' accepts a single value, got {len(values)}",
            argument=slot.name,
        )
    return True, _convert(slot, values[0], parser)


def check(slot, value, /):
    """Run the slot's validators; failures become InvalidValueError."""
    for validator in slot.validators:
        try:
            validator(value)
        except (ValueError, TypeError) as exception:
            raise InvalidValueError(
                f"invalid value for argument {slot.name!r}: {exception}",
                argument=slot.name,
                hint=str(exception) or "check the argument value",
            ) from exception


def construct(slot, arguments, cursor, parsers, /):
    """Construct an argument-holder and bind its slots with the shared cursor."""
    instance = slot.type()
    bind(instance, slot.properties.values(), arguments, cursor, parsers)
    return instance


def bind(target, slots, arguments, cursor, parsers, /):
    """
    Bind property slots onto target, in declaration order, then validate it.

    Not-found optional slots keep the target's current value; when it has none
    they receive the not-found value (None for plain values).
    """
    missing = []
    for slot in slots:
        if slot.holder:
            setattr(target, slot.attribute, construct(slot, arguments, cursor, parsers))
            continue
        found, value = resolve(slot, arguments, cursor, parsers)
        if found:
            check(slot, value)
            setattr(target, slot.attribute, value)
        elif slot.required:
            missing.append(slot)
        elif not hasattr(target, slot.attribute):
            setattr(target, slot.attribute, coalesce(value))
    validate(target, missing)


def validate(target, missing=(), /):
    """
    Report the first missing required slot, then run target.__validate__().
    """
    if missing:
        raise MissingArgumentError(f"argument {missing[0].syntax()!r} is required", argument=missing[0].name)
    hook = getattr(target, "__validate__", None)
    if not callable(hook):
        return
    for argument, message in hook() or ():
        raise InvalidValueError(f"invalid argument {argument!r}: {message}", argument=argument, hint=message)


def bind_parameter(slot, arguments, cursor, parsers, /):
    """
    Produce the call value of one Host.PARAMETER slot.
    """
    if slot.holder:
        return construct(slot, arguments, cursor, parsers)
    found, value = resolve(slot, arguments, cursor, parsers)
    if found:
        check(slot, value)
        return value
    if slot.required:
        raise MissingArgumentError(f"argument {slot.syntax()!r} is required", argument=slot.name)
    logger.debug("argument %r not given, using its default", slot.name)
    return coalesce(slot.default, coalesce(value))


__all__ = (
    "Cursor",
    "resolve",
    "check",
    "construct",
    "bind",
    "validate",
    "bind_parameter",
)
