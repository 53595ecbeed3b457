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

"""JSON type aliases used at serialization boundaries.

Tool arguments arrive as :data:`JSONObject` payloads, sandbox replies travel
across the worker pipe as JSON-compatible values and tool results are dumped
back to :data:`JSONValue` before they leave the MCP server.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

type JSONValue = str | int | float | bool | None | JSONObject | JSONArray
type JSONObject = Mapping[str, JSONValue]
type JSONArray = Sequence[JSONValue]

__all__ = ["JSONArray", "JSONObject", "JSONValue"]
