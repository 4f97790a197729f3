from collections.abc import Mapping, Sequence
from dataclasses import asdict
from typing import Any
import json

from .errors import ResponseDecodeError

class DirectoryResourceBase():
    """
    Intended to be subclassed by a dataclass but isnt actually a dataclass.
    Directory request bodies are just dicts so the dataclass is only there
    to give the fields names and defaults.
    """
    def to_base(self) -> dict:
        """
        Default just return the dict representation of the object as needed by
        the API.  Something more complicated can override.
        Call fixup() first to ensure all fields are in correct format.
        """
        self.fixup()
        return asdict(self)

    def trim(self) -> dict:
        """
        Return a 'trimmed' dict of the resource.  That is, removing any top level attributes
        that are empty or None.  Directory patch/insert calls only want filled-in fields
        and an explicit null would clear the value upstream.
        """
        b = self.to_base()
        for k, v in list(b.items()):
            if v is None or (type(v) not in [int, bool, float] and not v):
                del b[k]
        return b

    def fixup(self) -> None:
        """
        notify a subclass to do any field adjustments
        """
        pass


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, bytes, bytearray, int, float, bool))

def _empty_like(value: Any) -> dict|list|None:
    """New empty container matching the shape of value, None if it's not a container"""
    if _is_scalar(value):
        return None
    if isinstance(value, Mapping):
        return {}
    if isinstance(value, Sequence):
        return []
    return None

def normalize(value: Any) -> Any:
    """
    Turn a parsed JSON value into plain nested dicts/lists/scalars.
    Whatever the parser handed back (OrderedDict, tuples, a mapping type from some
    other JSON library, one of our resource dataclasses) comes out as dict/list
    with the same keys, same order and same nesting.  Scalars are passed through
    untouched, no number or string coercion.
    Done with an explicit stack instead of recursion since a deep enough document
    would blow the interpreter recursion limit.
    """
    if isinstance(value, DirectoryResourceBase):
        value = value.to_base()
    root = _empty_like(value)
    if root is None:
        return value
    # each entry is (source container, target container to fill in)
    stack = [(value, root)]
    while stack:
        source, target = stack.pop()
        if isinstance(target, dict):
            items = source.items()
        else:
            items = enumerate(source)
        for key, item in items:
            if isinstance(item, DirectoryResourceBase):
                item = item.to_base()
            child = _empty_like(item)
            if child is None:
                child = item
            else:
                stack.append((item, child))
            if isinstance(target, dict):
                target[key] = child
            else:
                target.append(child)
    return root

def parse_body(raw: str|bytes|None) -> Any:
    """
    Parse a raw response body and normalize it.
    Deletes and some patches come back with nothing in the body so empty is
    treated as an empty record rather than an error.
    """
    if raw is None:
        return {}
    text = raw.decode('utf-8') if isinstance(raw, (bytes, bytearray)) else str(raw)
    if not text.strip():
        return {}
    try:
        return normalize(json.loads(text))
    except json.JSONDecodeError as e:
        raise ResponseDecodeError(text) from e
