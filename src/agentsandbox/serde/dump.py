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

"""Dataclass serialization helpers."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import datetime
from pathlib import PurePath
from typing import cast

from ..types import JSONValue


def _serialize(value: object, *, exclude_none: bool) -> JSONValue:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dump(value, exclude_none=exclude_none)
    if isinstance(value, Mapping):
        items = cast(Mapping[object, object], value)
        return {
            str(key): _serialize(item, exclude_none=exclude_none)
            for key, item in items.items()
            if not (exclude_none and item is None)
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serialize(item, exclude_none=exclude_none) for item in value]
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


def dump(obj: object, *, exclude_none: bool = False) -> dict[str, JSONValue]:
    """Serialize a dataclass instance to a JSON-compatible dictionary."""

    if not dataclasses.is_dataclass(obj) or isinstance(obj, type):
        raise TypeError("dump() requires a dataclass instance")

    result: dict[str, JSONValue] = {}
    for field in dataclasses.fields(obj):
        value = getattr(obj, field.name)
        if exclude_none and value is None:
            continue
        result[field.name] = _serialize(value, exclude_none=exclude_none)
    return result


__all__ = ["dump"]
