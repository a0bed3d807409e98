"""Settings interface consumed by the scanner and the retention engine.

How settings are edited or persisted is not this package's concern; the
engine only reads resolved values through ``SettingsProvider``.
"""

from typing import Protocol

from .config import VigilConfig


def normalize_extension(ext: str) -> str:
    return ext.strip().lstrip(".").lower()


class SettingsProvider(Protocol):
    def get_scan_file_types(self) -> list[str]: ...

    def get_exclude_patterns(self) -> list[str]: ...

    def get_max_file_size(self) -> int: ...

    def get_retention_period(self) -> int: ...

    def get_retention_tier2_days(self) -> int: ...

    def get_retention_tier3_days(self) -> int: ...

    def get_text_extensions(self) -> list[str]: ...

    def get_diff_max_file_size(self) -> int: ...

    def get_diff_context_lines(self) -> int: ...


class ConfigSettingsProvider:
    """Adapts ``VigilConfig`` to the settings interface."""

    def __init__(self, config: VigilConfig):
        self._config = config

    def get_scan_file_types(self) -> list[str]:
        return [normalize_extension(e) for e in self._config.scan_file_types if e.strip()]

    def get_exclude_patterns(self) -> list[str]:
        return list(self._config.exclude_patterns)

    def get_max_file_size(self) -> int:
        return self._config.max_file_size

    def get_retention_period(self) -> int:
        return self._config.retention_period_days

    def get_retention_tier2_days(self) -> int:
        return self._config.retention_tier2_days

    def get_retention_tier3_days(self) -> int:
        return self._config.retention_tier3_days

    def get_text_extensions(self) -> list[str]:
        return [normalize_extension(e) for e in self._config.text_extensions if e.strip()]

    def get_diff_max_file_size(self) -> int:
        return self._config.diff_max_file_size

    def get_diff_context_lines(self) -> int:
        return self._config.diff_context_lines
