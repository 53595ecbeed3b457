# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Dataclass parsing helpers."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import MISSING
from pathlib import Path
from typing import Any, Literal, cast, get_args, get_origin, get_type_hints

from ._utils import NONE_TYPE, UNION_TYPE, apply_constraints, merge_annotated_meta

_NOT_HANDLED = object()
_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})


def bool_from_str(value: str) -> bool:
    """Interpret common textual booleans (``true``/``0``/``yes``/...)."""

    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise TypeError(f"Cannot interpret {value!r} as boolean")


def _coerce_union(
    value: object, base_type: object, meta: Mapping[str, object], path: str, coerce: bool
) -> object:
    if get_origin(base_type) is not UNION_TYPE:
        return _NOT_HANDLED
    if value is None and NONE_TYPE in get_args(base_type):
        return None
    last_error: Exception | None = None
    for arg in get_args(base_type):
        if arg is NONE_TYPE:
            continue
        try:
            coerced = _coerce_to_type(value, arg, None, path, coerce)
        except (TypeError, ValueError) as error:
            last_error = error
            continue
        return apply_constraints(coerced, meta, path)
    if last_error is not None:
        raise last_error
    raise TypeError(f"{path}: no matching type in Union")


def _coerce_literal(
    value: object, base_type: object, meta: Mapping[str, object], path: str
) -> object:
    if get_origin(base_type) is not Literal:
        return _NOT_HANDLED
    literals = get_args(base_type)
    for literal in literals:
        if value == literal and type(value) is type(literal):
            return apply_constraints(literal, meta, path)
    raise ValueError(f"{path}: expected one of {list(literals)}")


def _coerce_dataclass(
    value: object, base_type: object, meta: Mapping[str, object], path: str, coerce: bool
) -> object:
    if not (isinstance(base_type, type) and dataclasses.is_dataclass(base_type)):
        return _NOT_HANDLED
    if isinstance(value, base_type):
        return apply_constraints(value, meta, path)
    if not isinstance(value, Mapping):
        raise TypeError(f"{path}: expected mapping for {base_type.__name__}")
    try:
        parsed = parse(base_type, cast(Mapping[str, object], value), coerce=coerce)
    except (TypeError, ValueError) as error:
        raise type(error)(f"{path}.{error}") from error
    return apply_constraints(parsed, meta, path)


def _coerce_sequence(
    value: object, base_type: object, meta: Mapping[str, object], path: str, coerce: bool
) -> object:
    origin = get_origin(base_type)
    if origin not in {list, tuple, Sequence}:
        return _NOT_HANDLED
    if isinstance(value, str) and coerce:
        items: list[object] = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping)):
        items = list(cast(Iterable[object], value))
    else:
        raise TypeError(f"{path}: expected sequence")

    args = get_args(base_type)
    if origin is tuple and args and args[-1] is not Ellipsis:
        if len(items) != len(args):
            raise ValueError(f"{path}: expected {len(args)} items")
        item_types = list(args)
    else:
        item_types = [args[0] if args else object] * len(items)

    coerced = [
        _coerce_to_type(item, item_type, None, f"{path}[{index}]", coerce)
        for index, (item, item_type) in enumerate(zip(items, item_types, strict=True))
    ]
    result: object = list(coerced) if origin is list else tuple(coerced)
    return apply_constraints(result, meta, path)


def _coerce_mapping(
    value: object, base_type: object, meta: Mapping[str, object], path: str, coerce: bool
) -> object:
    origin = get_origin(base_type)
    if origin not in {dict, Mapping} and base_type not in {dict, Mapping}:
        return _NOT_HANDLED
    if not isinstance(value, Mapping):
        raise TypeError(f"{path}: expected mapping")
    args = get_args(base_type)
    key_type, value_type = args if len(args) == 2 else (object, object)  # noqa: PLR2004
    items = cast(Mapping[object, object], value)
    result = {
        _coerce_to_type(key, key_type, None, path, coerce): _coerce_to_type(
            item, value_type, None, f"{path}[{key!r}]", coerce
        )
        for key, item in items.items()
    }
    return apply_constraints(result, meta, path)


def _coerce_primitive(
    value: object, base_type: object, meta: Mapping[str, object], path: str, coerce: bool
) -> object:
    coercer = _PRIMITIVE_COERCERS.get(cast(type[object], base_type))
    if coercer is None:
        return _NOT_HANDLED
    literal_type = cast(type[object], base_type)
    if isinstance(value, literal_type) and not (
        isinstance(value, bool) and literal_type is not bool
    ):
        return apply_constraints(value, meta, path)
    if not coerce:
        raise TypeError(f"{path}: expected {literal_type.__name__}")
    try:
        coerced = coercer(value)
    except (TypeError, ValueError) as error:
        raise TypeError(
            f"{path}: unable to coerce {value!r} to {literal_type.__name__}"
        ) from error
    return apply_constraints(coerced, meta, path)


def _int_from_any(value: object) -> int:
    if isinstance(value, bool):
        raise TypeError("booleans are not integers")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("expected a whole number")
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"unsupported value {value!r}")


def _float_from_any(value: object) -> float:
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers")
    if isinstance(value, (int, str)):
        return float(value)
    raise TypeError(f"unsupported value {value!r}")


def _bool_from_any(value: object) -> bool:
    if isinstance(value, str):
        return bool_from_str(value)
    if isinstance(value, int):
        return bool(value)
    raise TypeError(f"unsupported value {value!r}")


def _str_from_any(value: object) -> str:
    if isinstance(value, (int, float, Path)) and not isinstance(value, bool):
        return str(value)
    raise TypeError(f"unsupported value {value!r}")


def _path_from_any(value: object) -> Path:
    if isinstance(value, str):
        return Path(value)
    raise TypeError(f"unsupported value {value!r}")


_PRIMITIVE_COERCERS: dict[type[object], Callable[[object], object]] = {
    bool: _bool_from_any,
    int: _int_from_any,
    float: _float_from_any,
    str: _str_from_any,
    Path: _path_from_any,
}


def _coerce_to_type(
    value: object,
    typ: object,
    meta: Mapping[str, object] | None,
    path: str,
    coerce: bool,
) -> object:
    base_type, merged_meta = merge_annotated_meta(typ, meta)

    if base_type is object or base_type is Any:
        return apply_constraints(value, merged_meta, path)
    union_result = _coerce_union(value, base_type, merged_meta, path, coerce)
    if union_result is not _NOT_HANDLED:
        return union_result
    if value is None:
        if base_type is NONE_TYPE:
            return None
        raise TypeError(f"{path}: value cannot be None")

    for coercer in (
        lambda: _coerce_literal(value, base_type, merged_meta, path),
        lambda: _coerce_dataclass(value, base_type, merged_meta, path, coerce),
        lambda: _coerce_sequence(value, base_type, merged_meta, path, coerce),
        lambda: _coerce_mapping(value, base_type, merged_meta, path, coerce),
        lambda: _coerce_primitive(value, base_type, merged_meta, path, coerce),
    ):
        result = coercer()
        if result is not _NOT_HANDLED:
            return result
    raise TypeError(f"{path}: unsupported field type {base_type!r}")


def parse[T](
    cls: type[T],
    data: Mapping[str, object] | object,
    *,
    extra: Literal["ignore", "forbid"] = "forbid",
    coerce: bool = True,
) -> T:
    """Parse a mapping into a dataclass instance.

    Values are coerced to the declared field types (``"5"`` becomes ``5`` for
    ``int`` fields, comma separated strings become tuples) unless
    ``coerce=False``. ``Annotated`` constraints are validated after coercion.
    Unknown keys raise :class:`ValueError` unless ``extra="ignore"``.

    Raises:
        TypeError: When ``data`` is not a mapping or a value has the wrong type.
        ValueError: When a required field is missing or a constraint fails.
    """

    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise TypeError("parse() requires a dataclass type")
    if not isinstance(data, Mapping):
        raise TypeError("parse() requires a mapping input")

    mapping_data = cast(Mapping[str, object], data)
    type_hints = get_type_hints(cls, include_extras=True)
    kwargs: dict[str, object] = {}
    init_fields = [field for field in dataclasses.fields(cls) if field.init]

    for field in init_fields:
        if field.name not in mapping_data:
            if field.default is MISSING and field.default_factory is MISSING:
                raise ValueError(f"Missing required field: '{field.name}'")
            continue
        kwargs[field.name] = _coerce_to_type(
            mapping_data[field.name],
            type_hints.get(field.name, field.type),
            dict(field.metadata),
            field.name,
            coerce,
        )

    if extra == "forbid":
        unknown = sorted(set(mapping_data) - {field.name for field in init_fields})
        if unknown:
            raise ValueError(f"Extra keys not permitted: {unknown}")

    return cls(**kwargs)


__all__ = ["bool_from_str", "parse"]
