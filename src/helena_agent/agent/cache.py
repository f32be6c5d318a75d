"""Per-run memoization of identical tool invocations."""

from __future__ import annotations

from typing import Any

from helena_agent.agent.stall import stable_params_key


def create_cache_key(tool_name: str, params: dict[str, Any]) -> str:
    return f"{tool_name}:{stable_params_key(params)}"


class ToolCache:
    """Plain dictionary cache; one instance lives exactly as long as one run."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self.hits = 0

    def get(self, key: str) -> Any | None:
        value = self._entries.get(key)
        if value is not None:
            self.hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
