"""Key/value configuration source with change notification."""

import logging
from typing import Any, Callable, Dict, List, Optional

from .models import AppConfig


logger = logging.getLogger(__name__)

ConfigListener = Callable[[AppConfig, AppConfig], None]


class ConfigSource:
    """Holds the live configuration and notifies subscribers when it changes.

    Keys are dotted paths into :class:`AppConfig`, e.g.
    ``"server.max_concurrent_requests"``.
    """

    def __init__(self, config: AppConfig, loader: Optional[Callable[[], AppConfig]] = None):
        self._config = config
        self._loader = loader
        self._listeners: List[ConfigListener] = []

    @property
    def config(self) -> AppConfig:
        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dotted configuration key, returning ``default`` when absent."""
        value: Any = self._config
        for part in key.split("."):
            if isinstance(value, dict):
                if part not in value:
                    return default
                value = value[part]
            elif hasattr(value, part):
                value = getattr(value, part)
            else:
                return default
        return value

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, changes: Dict[str, Any]) -> AppConfig:
        """Apply dotted-key changes, re-running field clamps, and notify listeners."""
        data = self._config.model_dump()
        for key, value in changes.items():
            target = data
            parts = key.split(".")
            for part in parts[:-1]:
                if part not in target or not isinstance(target[part], dict):
                    raise KeyError(f"Unknown configuration key: {key}")
                target = target[part]
            if parts[-1] not in target:
                raise KeyError(f"Unknown configuration key: {key}")
            target[parts[-1]] = value

        return self._replace(AppConfig.model_validate(data))

    def reload(self) -> AppConfig:
        """Reload configuration from the loader and notify listeners on change."""
        if self._loader is None:
            return self._config
        return self._replace(self._loader())

    def _replace(self, new_config: AppConfig) -> AppConfig:
        old_config = self._config
        if new_config == old_config:
            return old_config

        self._config = new_config
        logger.info("Configuration changed", extra={"listener_count": len(self._listeners)})

        for listener in list(self._listeners):
            try:
                listener(old_config, new_config)
            except Exception as e:
                logger.error(f"Configuration listener failed: {e}", exc_info=e)

        return new_config
