"""JSON-like value types used at the protocol boundary.

Messages are kept as plain decoded JSON between the two peers so fields the
proxy does not understand are forwarded untouched.
"""

from __future__ import annotations

from typing import TypeAlias


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
JSONArray: TypeAlias = list[JSONValue]
