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

"""Shared helpers for dataclass serde operations."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sized
from typing import Final, TypeAliasType, cast, get_args

UNION_TYPE: Final = type(int | str)
NONE_TYPE: Final = type(None)


def merge_annotated_meta(
    typ: object, meta: Mapping[str, object] | None
) -> tuple[object, dict[str, object]]:
    """Strip ``Annotated`` layers and collect their mapping metadata."""

    merged: dict[str, object] = dict(meta or {})
    base = typ
    while isinstance(base, TypeAliasType):
        base = base.__value__
    while getattr(base, "__metadata__", None) is not None:
        args = get_args(base)
        if not args:
            break
        base = args[0]
        for extra in args[1:]:
            if isinstance(extra, Mapping):
                merged.update(cast(Mapping[str, object], extra))
    return base, merged


def apply_constraints[ConstrainedT](
    value: ConstrainedT, meta: Mapping[str, object], path: str
) -> ConstrainedT:
    """Validate ``value`` against ``ge``/``le``/length/pattern/``in`` keys."""

    if not meta or value is None:
        return value
    _validate_bounds(value, meta, path)
    _validate_length(value, meta, path)
    _validate_pattern(value, meta, path)
    _validate_inclusion(value, meta, path)
    return value


def _validate_bounds(candidate: object, meta: Mapping[str, object], path: str) -> None:
    if isinstance(candidate, bool) or not isinstance(candidate, (int, float)):
        return

    for key, check, message in (
        ("ge", lambda bound: candidate >= bound, "must be >= {}"),
        ("gt", lambda bound: candidate > bound, "must be > {}"),
        ("le", lambda bound: candidate <= bound, "must be <= {}"),
        ("lt", lambda bound: candidate < bound, "must be < {}"),
    ):
        bound = meta.get(key)
        if isinstance(bound, (int, float)) and not check(bound):
            fail(path, message.format(bound))


def _validate_length(candidate: object, meta: Mapping[str, object], path: str) -> None:
    if not isinstance(candidate, Sized):
        return

    min_length = meta.get("min_length")
    if isinstance(min_length, int) and len(candidate) < min_length:
        fail(path, f"length must be >= {min_length}")
    max_length = meta.get("max_length")
    if isinstance(max_length, int) and len(candidate) > max_length:
        fail(path, f"length must be <= {max_length}")


def _validate_pattern(candidate: object, meta: Mapping[str, object], path: str) -> None:
    pattern = meta.get("pattern")
    if isinstance(candidate, str) and isinstance(pattern, str):
        if not re.search(pattern, candidate):
            fail(path, f"does not match pattern {pattern}")


def _validate_inclusion(
    candidate: object, meta: Mapping[str, object], path: str
) -> None:
    members = meta.get("in")
    if not isinstance(members, Iterable) or isinstance(members, (str, bytes)):
        return
    options = list(cast(Iterable[object], members))
    if candidate not in options:
        fail(path, f"must be one of {options}")


def fail(path: str, message: str) -> None:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "NONE_TYPE",
    "UNION_TYPE",
    "apply_constraints",
    "fail",
    "merge_annotated_meta",
]
