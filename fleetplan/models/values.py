"""Tagged value tree for free-form configuration sections.

org_settings, agent_options and controls are arbitrary nested YAML on the
declaration side and arbitrary nested JSON on the server side. Both are
decoded into ``ConfigValue`` trees so flattening and comparison never have
to guess what a raw ``dict`` / ``list`` / scalar is.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator


class ValueKind(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    MAP = "map"
    LIST = "list"


@dataclass(frozen=True)
class ConfigValue:
    """One node of a configuration tree.

    Scalars live in ``scalar``; lists in ``items``; maps in ``entries``,
    kept in source order as (key, value) pairs.
    """

    kind: ValueKind
    scalar: str | int | float | bool | None = None
    items: tuple[ConfigValue, ...] = ()
    entries: tuple[tuple[str, ConfigValue], ...] = ()

    @classmethod
    def from_raw(cls, raw: Any) -> ConfigValue:
        """Build a tree from decoded YAML or JSON."""
        if raw is None:
            return cls(ValueKind.NULL)
        # bool is a subclass of int, so it must be tested first
        if isinstance(raw, bool):
            return cls(ValueKind.BOOLEAN, scalar=raw)
        if isinstance(raw, (int, float)):
            return cls(ValueKind.NUMBER, scalar=raw)
        if isinstance(raw, str):
            return cls(ValueKind.STRING, scalar=raw)
        if isinstance(raw, dict):
            return cls(
                ValueKind.MAP,
                entries=tuple((str(k), cls.from_raw(v)) for k, v in raw.items()),
            )
        if isinstance(raw, (list, tuple)):
            return cls(ValueKind.LIST, items=tuple(cls.from_raw(v) for v in raw))
        # dates and other YAML-native scalars compare by their text form
        return cls(ValueKind.STRING, scalar=str(raw))

    @property
    def is_map(self) -> bool:
        return self.kind == ValueKind.MAP

    def get(self, key: str) -> ConfigValue | None:
        """Return the child at ``key`` of a map node, or None."""
        if not self.is_map:
            return None
        for entry_key, value in self.entries:
            if entry_key == key:
                return value
        return None

    def lookup(self, path: tuple[str, ...]) -> ConfigValue | None:
        """Walk a key path through nested maps."""
        node: ConfigValue | None = self
        for part in path:
            if node is None:
                return None
            node = node.get(part)
        return node

    def leaves(self, prefix: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], ConfigValue]]:
        """Yield (key path, value) for every non-map node below this map.

        Lists are leaves: they are compared as a whole, never element-wise.
        """
        for key, value in self.entries:
            path = prefix + (key,)
            if value.is_map:
                yield from value.leaves(path)
            else:
                yield path, value

    def to_plain(self) -> Any:
        if self.kind == ValueKind.MAP:
            return {k: v.to_plain() for k, v in self.entries}
        if self.kind == ValueKind.LIST:
            return [v.to_plain() for v in self.items]
        return self.scalar

    def render(self) -> str:
        """Textual form used for comparison and display.

        Integral floats render without a fraction so a YAML ``30`` equals a
        JSON ``30.0``; containers render as compact, key-sorted JSON.
        """
        if self.kind == ValueKind.NULL:
            return ""
        if self.kind == ValueKind.BOOLEAN:
            return "true" if self.scalar else "false"
        if self.kind == ValueKind.NUMBER:
            if isinstance(self.scalar, float) and self.scalar.is_integer():
                return str(int(self.scalar))
            return str(self.scalar)
        if self.kind == ValueKind.STRING:
            return str(self.scalar)
        return json.dumps(self.to_plain(), sort_keys=True, separators=(",", ":"), default=str)
