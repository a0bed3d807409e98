"""Text-file classification shared by the filter, the differ, and the cache."""

import enum
import posixpath
from typing import Iterable, Optional


class TextCategory(enum.Enum):
    SOURCE = "source"
    SCRIPT = "script"
    MARKUP = "markup"
    STYLESHEET = "stylesheet"
    DATA = "data"
    CONFIG = "config"
    DOCUMENT = "document"
    PLAIN = "plain"


KNOWN_EXTENSIONS: dict[str, TextCategory] = {
    "php": TextCategory.SOURCE,
    "phtml": TextCategory.SOURCE,
    "inc": TextCategory.SOURCE,
    "py": TextCategory.SOURCE,
    "rb": TextCategory.SOURCE,
    "pl": TextCategory.SOURCE,
    "js": TextCategory.SCRIPT,
    "mjs": TextCategory.SCRIPT,
    "ts": TextCategory.SCRIPT,
    "sh": TextCategory.SCRIPT,
    "html": TextCategory.MARKUP,
    "htm": TextCategory.MARKUP,
    "xml": TextCategory.MARKUP,
    "svg": TextCategory.MARKUP,
    "css": TextCategory.STYLESHEET,
    "scss": TextCategory.STYLESHEET,
    "less": TextCategory.STYLESHEET,
    "json": TextCategory.DATA,
    "yml": TextCategory.DATA,
    "yaml": TextCategory.DATA,
    "csv": TextCategory.DATA,
    "sql": TextCategory.DATA,
    "ini": TextCategory.CONFIG,
    "conf": TextCategory.CONFIG,
    "htaccess": TextCategory.CONFIG,
    "md": TextCategory.DOCUMENT,
    "txt": TextCategory.PLAIN,
}


def file_extension(path: str) -> str:
    """Lower-case extension without the dot.

    Dotfiles such as ``.htaccess`` are treated as all-extension names.
    """
    name = posixpath.basename(path.replace("\\", "/"))
    if name.startswith(".") and name.count(".") == 1:
        return name[1:].lower()
    _, dot, ext = name.rpartition(".")
    return ext.lower() if dot else ""


class TextClassifier:
    """Maps configured text extensions to a closed set of categories.

    Built once per scan from the configured extension list so every caller
    sees the same answer for the same path.
    """

    def __init__(self, extensions: Iterable[str]):
        self._categories: dict[str, TextCategory] = {}
        for ext in extensions:
            ext = ext.strip().lstrip(".").lower()
            if ext:
                self._categories[ext] = KNOWN_EXTENSIONS.get(ext, TextCategory.PLAIN)

    def classify(self, path: str) -> Optional[TextCategory]:
        return self._categories.get(file_extension(path))

    def is_text(self, path: str) -> bool:
        return self.classify(path) is not None

    @property
    def extensions(self) -> frozenset[str]:
        return frozenset(self._categories)
