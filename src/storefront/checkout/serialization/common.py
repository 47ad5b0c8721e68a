"""Common converters."""
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Type, TypeVar, Union

import orjson
from cattrs import Converter

T = TypeVar("T")

TypeFn = Callable[[Any], bool]


def json_dumps(obj: object) -> bytes:
    """JSON dumps function."""
    return orjson.dumps(obj)


def json_loads(v: Union[str, bytes]) -> Any:
    """JSON loads function."""
    return orjson.loads(v)


class CustomConverter(Converter):
    """Converter that uses orjson."""

    def dumps(self, obj: object, unstructure_as=None) -> bytes:
        unstructured = self.unstructure(obj, unstructure_as)
        return json_dumps(unstructured)

    def loads(self, value: Union[str, bytes], cl: Type[T]) -> T:
        obj = json_loads(value)
        return self.structure(obj, cl)


def structure_datetime(v: object) -> datetime:
    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, (float, int)):
        dt = datetime.fromtimestamp(v, tz=timezone.utc)
    elif isinstance(v, str):
        # upstream timestamps use a trailing Z
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Invalid datetime: {v!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt


def structure_path(v: object) -> Path:
    if isinstance(v, Path):
        return v
    elif isinstance(v, str):
        return Path(v)
    else:
        raise TypeError(f"Invalid path: {v!r}")


converter = CustomConverter()

structure_funcs: dict[TypeFn, Callable[[Any, Any], Any]] = {
    lambda cls: cls is datetime: lambda v, t: structure_datetime(v),
    lambda cls: cls is Path: lambda v, t: structure_path(v),
}


def configure_converter(c: Converter):
    for test_func, func in structure_funcs.items():
        c.register_structure_hook_func(test_func, func)

    c.register_unstructure_hook(datetime, lambda v: v.isoformat())


configure_converter(converter)
