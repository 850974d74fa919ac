from __future__ import annotations
from importlib import import_module
from typing import Any, Mapping, Optional


class Registry:
    """Maps plugin keys (``"demuxer"``) to ``module.path:ClassName`` targets."""
    def __init__(self, defaults: Optional[Mapping[str, str]] = None):
        self._map: dict[str, str] = dict(defaults or {})

    def register(self, key: str, target: str) -> None:
        self._map[key] = target

    def update(self, targets: Mapping[str, str]) -> None:
        for key, target in targets.items():
            self.register(key, target)

    def target(self, key: str) -> str:
        return self._map.get(key, key)

    def resolve(self, key: str) -> Any:
        target = self.target(key)
        mod_path, _, obj = target.partition(":")
        try:
            mod = import_module(mod_path)
        except ImportError as exc:
            raise RuntimeError(f"plugin '{key}' -> '{target}' could not be imported: {exc}") from exc
        if not obj:
            return mod
        try:
            return getattr(mod, obj)
        except AttributeError as exc:
            raise RuntimeError(f"plugin '{key}' -> '{target}' has no attribute '{obj}'") from exc

    def create(self, key: str, *args, **kwargs):
        return self.resolve(key)(*args, **kwargs)


REGISTRY = Registry({"demuxer": "plugins.demuxers.pyav.impl:PyAVDemuxer"})
