"""
Framework configuration for kvsync.

A single FrameworkConfig instance holds the pluggable behaviors of the
library. It can be replaced globally (set_framework_config) or overridden for
the current context only (config_override), which is what tests use.
"""
import contextvars
import dataclasses
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional


@dataclass(frozen=True)
class FrameworkConfig:
    """Pluggable behaviors.

    Attributes:
        tag: Dataclass field metadata key holding per-field formats.
        ignore_unmarshal_failure: When routing updates, reset a field to its
            zero value if the incoming string cannot be parsed.
        raise_callback_errors: Raise CallbackError from Sync.next when a
            callback fails. When False, failures are only logged.
        poll_interval: Seconds between cancellation checks while a
            MemoryStore waits for updates.
    """
    tag: str = 'kvs'
    ignore_unmarshal_failure: bool = True
    raise_callback_errors: bool = True
    poll_interval: float = 0.05


_framework_config: FrameworkConfig = FrameworkConfig()

# Context-local override, takes precedence over the module-level config
_config_override: contextvars.ContextVar[Optional[FrameworkConfig]] = contextvars.ContextVar(
    'kvsync_config_override', default=None
)


def get_framework_config() -> FrameworkConfig:
    """Get the configuration in effect for the current context."""
    override = _config_override.get()
    return override if override is not None else _framework_config


def set_framework_config(config: Optional[FrameworkConfig] = None, **changes) -> FrameworkConfig:
    """Replace the global configuration.

    Args:
        config: New configuration. Defaults to the current global one.
        **changes: Individual attributes to change on top of config.

    Returns:
        The configuration now in effect globally.
    """
    global _framework_config
    base = config if config is not None else _framework_config
    _framework_config = dataclasses.replace(base, **changes)
    return _framework_config


def reset_framework_config() -> None:
    """Restore the default configuration."""
    global _framework_config
    _framework_config = FrameworkConfig()


@contextmanager
def config_override(**changes) -> Generator[FrameworkConfig, None, None]:
    """Override configuration attributes for the current context.

    Usage:
        with config_override(raise_callback_errors=False):
            sync.next()
    """
    config = dataclasses.replace(get_framework_config(), **changes)
    token = _config_override.set(config)
    try:
        yield config
    finally:
        _config_override.reset(token)
