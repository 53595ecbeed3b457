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

"""Dataclass schema generation helpers."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from dataclasses import MISSING
from pathlib import Path
from typing import Any, Literal, cast, get_args, get_origin, get_type_hints

from ..types import JSONValue
from ._utils import NONE_TYPE, UNION_TYPE, merge_annotated_meta

_PRIMITIVE_FORMATS: dict[object, dict[str, JSONValue]] = {
    bool: {"type": "boolean"},
    int: {"type": "integer"},
    float: {"type": "number"},
    str: {"type": "string"},
    Path: {"type": "string"},
    NONE_TYPE: {"type": "null"},
}

_CONSTRAINT_KEYS = {
    "ge": "minimum",
    "gt": "exclusiveMinimum",
    "le": "maximum",
    "lt": "exclusiveMaximum",
    "min_length": "minLength",
    "max_length": "maxLength",
    "pattern": "pattern",
    "in": "enum",
    "description": "description",
}


def _schema_constraints(meta: Mapping[str, object]) -> dict[str, JSONValue]:
    schema_meta: dict[str, JSONValue] = {}
    for key, target in _CONSTRAINT_KEYS.items():
        if key in meta:
            value = meta[key]
            schema_meta[target] = (
                list(cast(Sequence[JSONValue], value))
                if isinstance(value, (tuple, frozenset, set))
                else cast(JSONValue, value)
            )
    return schema_meta


def _schema_for_type(typ: object, meta: Mapping[str, object] | None) -> dict[str, JSONValue]:
    base_type, merged_meta = merge_annotated_meta(typ, meta)
    origin = get_origin(base_type)
    args = get_args(base_type)

    schema_data: dict[str, JSONValue]
    if base_type is object or base_type is Any:
        schema_data = {}
    elif base_type in _PRIMITIVE_FORMATS:
        schema_data = dict(_PRIMITIVE_FORMATS[base_type])
    elif origin is Literal:
        literal_values = list(args)
        schema_data = {"enum": literal_values}
        if all(isinstance(value, str) for value in literal_values):
            schema_data["type"] = "string"
    elif origin is UNION_TYPE:
        schema_data = {"anyOf": [_schema_for_type(arg, None) for arg in args]}
    elif origin in {list, tuple, Sequence}:
        item_type = args[0] if args else object
        schema_data = {"type": "array", "items": _schema_for_type(item_type, None)}
    elif origin in {dict, Mapping} or base_type in {dict, Mapping}:
        value_type = args[1] if len(args) == 2 else object  # noqa: PLR2004
        schema_data = {
            "type": "object",
            "additionalProperties": _schema_for_type(value_type, None),
        }
    elif isinstance(base_type, type) and dataclasses.is_dataclass(base_type):
        schema_data = schema(base_type)
    else:
        raise TypeError(f"Unsupported schema type: {base_type!r}")

    schema_data.update(_schema_constraints(merged_meta))
    return schema_data


def schema(
    cls: type[object],
    *,
    extra: Literal["ignore", "forbid"] = "forbid",
) -> dict[str, JSONValue]:
    """Produce a JSON Schema object describing ``cls``.

    Field ``description`` metadata and ``Annotated`` constraints are copied
    into the property schemas; fields without defaults are ``required``.
    """

    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise TypeError("schema() requires a dataclass type")

    properties: dict[str, JSONValue] = {}
    required: list[JSONValue] = []
    type_hints = get_type_hints(cls, include_extras=True)

    for field in dataclasses.fields(cls):
        if not field.init:
            continue
        field_type = type_hints.get(field.name, field.type)
        properties[field.name] = _schema_for_type(field_type, dict(field.metadata))
        if field.default is MISSING and field.default_factory is MISSING:
            required.append(field.name)

    schema_dict: dict[str, JSONValue] = {
        "title": cls.__name__,
        "type": "object",
        "properties": properties,
        "additionalProperties": extra != "forbid",
    }
    if required:
        schema_dict["required"] = required
    return schema_dict


__all__ = ["schema"]
