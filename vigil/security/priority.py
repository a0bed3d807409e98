"""Priority classification and change-velocity hooks."""

from typing import Optional, Protocol

from ..scanner.filters import glob_to_regex


class PriorityClassifier(Protocol):
    def classify(self, file_path: str) -> Optional[str]: ...


class VelocityRecorder(Protocol):
    def record_change(self, file_path: str, scan_id: int) -> None: ...


class GlobPriorityClassifier:
    """Ordered (glob, level) rules; the first matching rule wins."""

    def __init__(self, rules: dict[str, str]):
        self._rules = [(glob_to_regex(pattern), level) for pattern, level in rules.items()]

    def classify(self, file_path: str) -> Optional[str]:
        anchored = "/" + file_path
        for regex, level in self._rules:
            if regex.match(file_path) or regex.match(anchored):
                return level
        return None
