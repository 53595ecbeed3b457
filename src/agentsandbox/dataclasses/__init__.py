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

"""Frozen dataclass helpers shared by params, results and settings."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import MISSING, dataclass, fields
from typing import Any, TypedDict, TypeVar, Unpack, cast, dataclass_transform

__all__ = ["FrozenDataclass"]

T = TypeVar("T")


class DataclassOptions(TypedDict, total=False):
    init: bool
    repr: bool
    eq: bool
    order: bool
    unsafe_hash: bool
    frozen: bool
    match_args: bool
    kw_only: bool
    slots: bool


@dataclass_transform()
def FrozenDataclass(
    **dataclass_kwargs: Unpack[DataclassOptions],
) -> Callable[[type[T]], type[T]]:
    """Dataclass decorator defaulting to ``frozen=True`` and ``slots=True``.

    Decorated classes gain two copy helpers:

    - ``update(**changes)`` returns a copy with ``changes`` applied and
      re-runs ``__post_init__`` so validation still holds.
    - ``merge(mapping)`` applies the known keys of ``mapping``; unknown keys
      raise :class:`TypeError`.

    A class may define a ``__pre_init__`` classmethod. It receives every
    init field as a keyword argument (defaults filled in) and returns the
    normalised mapping passed to the generated ``__init__``. Settings use it
    to turn lists into tuples and strings into paths before freezing.
    """

    options: DataclassOptions = {
        "frozen": True,
        "slots": True,
        **dataclass_kwargs,
    }

    def decorator(cls: type[T]) -> type[T]:
        dataclass_cls = cast(Callable[[type[T]], type[T]], dataclass(**options))(cls)
        _attach_helpers(dataclass_cls)
        return dataclass_cls

    return decorator


def _attach_helpers(cls: type[Any]) -> None:
    pre_init = getattr(cls, "__pre_init__", None)
    if pre_init is not None:
        cls.__init__ = _wrap_init(cls, pre_init, cls.__init__)
    cls.update = _update
    cls.merge = _merge


def _wrap_init(
    cls: type[Any],
    pre_init: Callable[..., Mapping[str, object]],
    original_init: Callable[..., None],
) -> Callable[..., None]:
    init_fields = [item for item in fields(cls) if item.init]
    names = [item.name for item in init_fields]

    def __init__(self: object, *args: object, **kwargs: object) -> None:
        if len(args) > len(names):
            raise TypeError(
                f"{cls.__name__}() takes {len(names)} positional arguments "
                f"but {len(args)} were given"
            )
        unexpected = sorted(set(kwargs) - set(names))
        if unexpected:
            raise TypeError(
                f"{cls.__name__}() got unexpected keyword arguments: "
                f"{', '.join(unexpected)}"
            )

        bound: dict[str, object] = dict(zip(names, args, strict=False))
        for item in init_fields[len(args) :]:
            if item.name in kwargs:
                bound[item.name] = kwargs[item.name]
            elif item.default is not MISSING:
                bound[item.name] = item.default
            elif item.default_factory is not MISSING:
                bound[item.name] = item.default_factory()
            else:
                raise TypeError(
                    f"{cls.__name__}() missing required argument: '{item.name}'"
                )

        normalized = pre_init(**bound)
        if not isinstance(normalized, Mapping):
            raise TypeError(f"{cls.__name__}.__pre_init__() must return a mapping")
        original_init(self, **normalized)

    return __init__


def _update[S](self: S, **changes: object) -> S:
    cls = type(self)
    values = {item.name: getattr(self, item.name) for item in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(changes) - values.keys())
    if unknown:
        raise TypeError(f"{cls.__name__}() got unexpected field(s): {', '.join(unknown)}")
    values.update(changes)

    instance = cls.__new__(cls)
    for name, value in values.items():
        object.__setattr__(instance, name, value)
    post_init = getattr(instance, "__post_init__", None)
    if callable(post_init):
        _ = post_init()
    return instance


def _merge[S](self: S, mapping: Mapping[str, object]) -> S:
    cls = type(self)
    names = {item.name for item in fields(cls) if item.init}  # type: ignore[arg-type]
    unknown = sorted(set(mapping) - names)
    if unknown:
        raise TypeError(
            f"{cls.__name__}.merge() received unexpected fields: {', '.join(unknown)}"
        )
    return _update(self, **dict(mapping))
