"""Name -> factory registries for pluggable sources and scorers."""

from __future__ import annotations

import importlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class PluginSpec:
    """Spec describing a dynamically imported implementation."""

    name: str
    module: str
    class_name: str

    @classmethod
    def parse(cls, name: str, target: str) -> "PluginSpec":
        """Parse a ``module:ClassName`` target string."""

        module, sep, class_name = target.partition(":")
        if not sep or not module or not class_name:
            raise ValueError(f"Plugin target must look like 'module:ClassName', got '{target}'")
        return cls(name=name, module=module, class_name=class_name)


class PluginRegistry(Generic[T]):
    """Registry that maps stable names to constructors."""

    kind = "plugin"

    def __init__(self) -> None:
        self._factories: dict[str, Callable[..., T]] = {}

    def register(self, name: str, factory: Callable[..., T]) -> None:
        """Register a factory under a unique name."""

        key = name.strip().lower()
        if not key:
            raise ValueError(f"{self.kind.capitalize()} name cannot be empty")
        if key in self._factories:
            raise ValueError(f"{self.kind.capitalize()} already registered: {name}")
        self._factories[key] = factory

    def register_plugin(self, plugin: PluginSpec) -> None:
        """Register an implementation by importing a module/class at runtime."""

        module = importlib.import_module(plugin.module)
        factory = getattr(module, plugin.class_name)
        self.register(plugin.name, factory)

    def create(self, name: str, **kwargs: Any) -> T:
        """Instantiate a registered implementation."""

        key = name.strip().lower()
        if key not in self._factories:
            raise KeyError(
                f"Unknown {self.kind} '{name}'. Available: {', '.join(self.available())}"
            )
        return self._factories[key](**kwargs)

    def available(self) -> list[str]:
        """Return sorted list of known names."""

        return sorted(self._factories.keys())
