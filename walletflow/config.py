"""
walletflow Config - Settings Seeded Once, Then Driven by User Events
====================================================================

Every setting is read from the persisted configuration exactly once (the first
value of the `persisted` stream) and from then on only changes in response to
user events. Persisted configuration is never re-read.

- Cyclic settings (theme, unit) step through a fixed ordered list:
  `index = (index + increment) % len(options)`
- Flag settings (expert mode) flip on every toggle
- Override settings (server) take the value carried by each save event
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .records import Config
from .settings import ModelSettings
from .stream import Stream, combine_latest


def persisted_setting(persisted: Stream, name: str, default: Any) -> Stream:
    """One-shot: the stored value for `name`, or `default` when unset or empty."""
    return persisted.first().map(lambda conf: conf.get(name) or default)


def option_index(options: Sequence[str], value: Any) -> int:
    """Position of value in options; unknown values fall back to the first option."""
    return options.index(value) if value in options else 0


def cyclic_setting(
    persisted: Stream, toggles: Stream, name: str, options: Sequence[str], default: str
) -> Stream:
    """
    A setting cycling through `options`.

    Args:
        persisted: Persisted configuration mappings (only the first is read)
        toggles: Increments, usually +1 or -1
        name: Key in the persisted configuration
        options: Ordered option list
        default: Option used when nothing is stored
    """
    size = len(options)
    return (
        persisted_setting(persisted, name, default)
        .map(lambda value: option_index(options, value))
        .concat(toggles)
        .scan(lambda index, increment: (index + increment) % size)
        .map(lambda index: options[index])
    )


def flag_setting(persisted: Stream, toggles: Stream, name: str, default: bool = False) -> Stream:
    """A boolean setting that flips on every toggle event."""
    return (
        persisted_setting(persisted, name, default)
        .map(bool)
        .concat(toggles)
        .scan(lambda value, _: not value)
    )


def override_setting(persisted: Stream, overrides: Stream, name: str, default: Any) -> Stream:
    """A setting replaced wholesale by every override event."""
    return persisted_setting(persisted, name, default).concat(overrides)


@dataclass(frozen=True)
class ConfigNodes:
    """The individual setting streams plus their combination into `Config`."""

    server: Stream
    expert: Stream
    theme: Stream
    unit: Stream
    config: Stream


def config_nodes(
    settings: ModelSettings,
    persisted: Stream,
    save_config: Stream,
    toggle_expert: Stream,
    toggle_theme: Stream,
    toggle_unit: Stream,
) -> ConfigNodes:
    server = override_setting(
        persisted, save_config.map(_server_of), "server", settings.default_server
    )
    expert = flag_setting(persisted, toggle_expert, "expert")
    theme = cyclic_setting(persisted, toggle_theme, "theme", settings.themes, settings.default_theme)
    unit = cyclic_setting(persisted, toggle_unit, "unit", settings.units, settings.default_unit)
    config = combine_latest(server, expert, theme, unit, combiner=Config)
    return ConfigNodes(server, expert, theme, unit, config)


def _server_of(saved: Mapping[str, Any]) -> Any:
    return saved.get("server")


__all__ = [
    "persisted_setting",
    "option_index",
    "cyclic_setting",
    "flag_setting",
    "override_setting",
    "ConfigNodes",
    "config_nodes",
]
