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

"""Serialization helpers for tool params and results.

``parse(cls, data)`` turns a JSON mapping into a params dataclass with type
coercion and ``Annotated`` constraint checks::

    @FrozenDataclass()
    class CodeExecutionParams:
        code: Annotated[str, {"min_length": 1, "max_length": 50000}]
        timeout: Annotated[int, {"ge": 100, "le": 30000}] = 5000

    params = parse(CodeExecutionParams, {"code": "1 + 1", "timeout": "250"})
    assert params.timeout == 250

``schema(cls)`` renders the matching JSON Schema (used for MCP tool listings)
and ``dump(obj)`` converts results back to JSON-compatible dictionaries.
"""

from __future__ import annotations

from .dump import dump
from .parse import bool_from_str, parse
from .schema import schema

__all__ = ["bool_from_str", "dump", "parse", "schema"]
