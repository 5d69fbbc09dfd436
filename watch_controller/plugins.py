"""Watch plugin registry.

A watch plugin claims one hotkey. Pressing it hands the keyboard to the
plugin until the plugin calls the ``on_done`` callback it was given.

A plugin module exposes one of:

- ``plugin``: a ready plugin instance
- ``create_plugin()``: a factory returning an instance
- ``WatchPlugin``: a class instantiated without arguments

Plugin identifiers may be a dotted module path (``pkg.mod``), a
``module:attribute`` reference, or a file path relative to the root dir.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterator, Protocol, runtime_checkable

from .exceptions import PluginLoadError, PluginValidationError, record_error
from .keys import RESERVED_KEY_CODES

if TYPE_CHECKING:
    from .models import RunConfiguration

logger = logging.getLogger(__name__)

PLUGIN_ATTRIBUTES = ("plugin", "create_plugin", "WatchPlugin")


@runtime_checkable
class WatchPlugin(Protocol):
    """The capability a plugin must provide."""

    key: int
    prompt: str

    def enter(self, config: RunConfiguration, on_done: Callable[[], None]) -> None: ...

    def on_key(self, key: str) -> None: ...


@dataclass(frozen=True)
class PluginDescriptor:
    """A loaded plugin together with where it came from."""

    plugin: WatchPlugin
    source: str

    @property
    def key(self) -> int:
        return self.plugin.key

    @property
    def prompt(self) -> str:
        return self.plugin.prompt

    @property
    def key_label(self) -> str:
        return chr(self.plugin.key)

    def activate(self, config: RunConfiguration, on_done: Callable[[], None]) -> None:
        self.plugin.enter(config, on_done)

    def put(self, key: str) -> None:
        self.plugin.on_key(key)


def _import_target(identifier: str, root_dir: Path) -> Any:
    module_ref, _, attribute = identifier.partition(":")
    candidate = Path(module_ref)
    if not candidate.is_absolute():
        candidate = root_dir / candidate
    if module_ref.endswith(".py") or candidate.is_file():
        if not candidate.is_file():
            raise FileNotFoundError(str(candidate))
        spec = importlib.util.spec_from_file_location(
            f"watch_plugin_{candidate.stem}", candidate
        )
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load plugin file {candidate}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
    else:
        module = importlib.import_module(module_ref)

    if attribute:
        return getattr(module, attribute)
    for name in PLUGIN_ATTRIBUTES:
        if hasattr(module, name):
            return getattr(module, name)
    raise AttributeError(
        f"Module {module.__name__} defines none of {', '.join(PLUGIN_ATTRIBUTES)}"
    )


def _instantiate(target: Any) -> Any:
    if isinstance(target, type) or (callable(target) and not hasattr(target, "enter")):
        return target()
    return target


class WatchPluginRegistry:
    """Hotkey lookup for loaded plugins, kept in registration order."""

    def __init__(self, root_dir: str | Path = ".") -> None:
        self.root_dir = Path(root_dir)
        self._plugins: dict[int, PluginDescriptor] = {}

    def load_plugin_path(self, identifier: str) -> PluginDescriptor:
        """Resolve, instantiate and register a plugin.

        Raises:
            PluginLoadError: If the identifier cannot be resolved or imported.
            PluginValidationError: If the object is not a usable plugin.
        """
        try:
            target = _import_target(identifier, self.root_dir)
        except (ImportError, AttributeError, FileNotFoundError, SyntaxError) as e:
            logger.error("Failed to load watch plugin %s: %s", identifier, e)
            record_error(e)
            raise PluginLoadError(
                f"Cannot resolve watch plugin '{identifier}'",
                plugin_path=identifier,
                cause=e,
            ) from e

        try:
            plugin = _instantiate(target)
        except Exception as e:
            record_error(e)
            raise PluginLoadError(
                f"Watch plugin '{identifier}' failed to initialize",
                plugin_path=identifier,
                cause=e,
            ) from e

        return self.register(plugin, source=identifier)

    def register(self, plugin: Any, *, source: str = "<inline>") -> PluginDescriptor:
        if not isinstance(plugin, WatchPlugin):
            raise PluginValidationError(
                "Watch plugin must define key, prompt, enter() and on_key()",
                plugin_path=source,
            )
        key = plugin.key
        if not isinstance(key, int):
            raise PluginValidationError(
                "Watch plugin key must be an integer code point",
                plugin_path=source,
            )
        if key in RESERVED_KEY_CODES:
            raise PluginValidationError(
                "Watch plugin key is used by a built-in command",
                plugin_path=source,
                key=key,
            )
        if key in self._plugins:
            raise PluginValidationError(
                f"Watch plugin key already registered by '{self._plugins[key].source}'",
                plugin_path=source,
                key=key,
            )
        descriptor = PluginDescriptor(plugin=plugin, source=source)
        self._plugins[key] = descriptor
        logger.info("Registered watch plugin %s on key %r", source, descriptor.key_label)
        return descriptor

    def get_plugin_by_pressed_key(self, code: int | None) -> PluginDescriptor | None:
        if code is None:
            return None
        return self._plugins.get(code)

    def get_plugins_in_order(self) -> list[PluginDescriptor]:
        return list(self._plugins.values())

    def __iter__(self) -> Iterator[PluginDescriptor]:
        return iter(self.get_plugins_in_order())

    def __len__(self) -> int:
        return len(self._plugins)
