"""Description and invocation of the tools the server offers."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


class ToolError(Exception):
    """A tool call that could not be carried out; the message is shown to the caller."""


def _matches(value: Any, schema: Mapping[str, Any]) -> bool:
    kind = schema.get("type")
    types = _JSON_TYPES.get(kind) if kind else None
    if types is None:
        return True
    if kind in ("integer", "number") and isinstance(value, bool):
        return False
    if not isinstance(value, types):
        return False
    items = schema.get("items")
    if kind == "array" and items:
        return all(_matches(item, items) for item in value)
    return True


@dataclass(frozen=True)
class ToolSpec:
    """A named tool: its argument schema and the function that carries it out.

    ``properties`` maps argument names to JSON-schema fragments, ``required`` names
    the arguments that must be present, and ``renames`` maps argument names to the
    keyword under which the handler receives them.
    """

    name: str
    description: str
    handler: Callable[..., str]
    properties: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    renames: Mapping[str, str] = field(default_factory=dict)

    def describe(self) -> dict[str, Any]:
        """The tool's entry in a tool listing."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": {key: dict(value) for key, value in self.properties.items()},
                "required": list(self.required),
            },
        }

    def call(self, conn: sqlite3.Connection, arguments: Mapping[str, Any] | None = None) -> str:
        """Check ``arguments`` against the schema and run the handler, returning its text."""
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ToolError(f"arguments for '{self.name}' must be an object")

        kwargs: dict[str, Any] = {}
        for name, schema in self.properties.items():
            value = arguments.get(name)
            if value is None:
                if name in self.required:
                    raise ToolError(f"missing field `{name}`")
                continue
            if not _matches(value, schema):
                raise ToolError(
                    f"invalid type for field `{name}`: expected {schema.get('type')}"
                )
            if isinstance(value, tuple):
                value = list(value)
            kwargs[self.renames.get(name, name)] = value

        try:
            return self.handler(conn, **kwargs)
        except ToolError:
            raise
        except Exception as exc:  # every failure is reported to the client as a tool error
            raise ToolError(str(exc)) from exc