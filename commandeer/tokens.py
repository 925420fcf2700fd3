"""
Commandeer tokenizer: raw argv-style tokens → structured CliArguments view.

Token grammar
- "--name"   (length > 2)  value key; following bare tokens are its values.
                           With no values at all it behaves like a flag.
- "-name"    (length > 1)  flag key; never carries values. "-1" or "-.5"
                           are negative numbers, hence values, not flags.
- "-"                      a value when it follows a value key, otherwise a
                           keyless token (chunk delimiters are split off by
                           dispatch.split() before tokenizing).
- anything else            a value of the current value key, or keyless.

Keys are case-insensitive. The casing seen first is kept and reported by
get_existing_key(). Repeating a value key accumulates values; using one key
both as a flag and as a value key is a MalformedTokenError.
"""
import re

from .faults import MalformedTokenError
from .utils import mirror

_KEY = re.compile(r"(?!-)\S+")


class CliArguments:
    """
    Structured view of one chunk of tokens.

    Attributes
    - keyless: tuple of positional tokens, in input order.
    - tokens: the raw tokens this view was built from.
    """

    def __init__(self, tokens=(), /):
        if isinstance(tokens, str):
            raise TypeError("CliArguments() argument must be a sequence of strings, not a string")
        self._tokens = tuple(tokens)
        self._keyless = []
        # casefolded key -> [first-seen key, values list or None for flags]
        self._named = {}

        current = None
        for index, token in enumerate(self._tokens):
            if not isinstance(token, str):
                raise TypeError(f"CliArguments() tokens must be strings, got {type(token).__name__}")
            if token == "--":
                raise MalformedTokenError(f"bare '--' at position {index + 1} is not a valid key")
            if token.startswith("--"):
                current = self._register(token[2:], index, flag=False)
            elif len(token) > 1 and token.startswith("-") and not (token[1].isdigit() or token[1] == "."):
                self._register(token[1:], index, flag=True)
                current = None
            elif current is not None:
                current[1].append(token)
            else:
                self._keyless.append(token)

    def _register(self, key, index, /, *, flag):
        if not _KEY.fullmatch(key):
            raise MalformedTokenError(f"malformed key {self._tokens[index]!r} at position {index + 1}")
        entry = self._named.setdefault(key.casefold(), [key, None if flag else []])
        if (entry[1] is None) != flag:
            raise MalformedTokenError(
                f"key {entry[0]!r} is used both as a flag and as a value key (position {index + 1})"
            )
        return entry

    tokens = mirror("tokens")
    keyless = mirror("keyless")

    def keys(self):
        """Return the named keys in first-seen casing."""
        return tuple(key for key, _ in self._named.values())

    def get_existing_key(self, name, /):
        """Return the first-seen casing of name, or None when it was not given."""
        entry = self._named.get(name.casefold())
        return entry[0] if entry else None

    def __contains__(self, name):
        return isinstance(name, str) and name.casefold() in self._named

    def is_boolean(self, name, /):
        """True when name was given as a flag, or as a value key without values."""
        entry = self._named.get(name.casefold())
        return entry is not None and not entry[1]

    def count(self, name, /):
        """Number of values registered under name (0 for flags and absent keys)."""
        entry = self._named.get(name.casefold())
        return len(entry[1]) if entry and entry[1] else 0

    def all(self, name, /):
        """Every value registered under name, in input order."""
        entry = self._named.get(name.casefold())
        return tuple(entry[1]) if entry and entry[1] else ()

    def single(self, name, /):
        """The one value registered under name; KeyError/ValueError otherwise."""
        if name not in self:
            raise KeyError(name)
        if len(values := self.all(name)) != 1:
            raise ValueError(f"{name!r} carries {len(values)} values")
        return values[0]

    def __len__(self):
        return len(self._tokens)

    def __rich_repr__(self):
        yield "keyless", self.keyless
        yield "named", {key: values for key, values in self._named.values()}

    def __repr__(self):
        return f"CliArguments({list(self._tokens)!r})"


__all__ = (
    "CliArguments",
)
