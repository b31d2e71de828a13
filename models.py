"""Data models for the Clay import/export pipeline."""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger('claycli.models')


class AssetType(Enum):
    """Recognized content types addressable through the Clay API."""
    COMPONENTS = "components"
    LAYOUTS = "layouts"
    PAGES = "pages"
    URIS = "uris"
    LISTS = "lists"
    USERS = "users"

    @property
    def bootstrap_key(self) -> str:
        """Top-level key used for this type in a bootstrap document."""
        return f"_{self.value}"

    @property
    def segment(self) -> str:
        """URI segment used for this type, e.g. ``/_components``."""
        return f"/_{self.value}"


class ResultStatus(Enum):
    """Outcome of a single PUT or lint check."""
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class Asset:
    """A single unit of import: one absolute URL and the data to PUT there.

    ``is_layout`` marks data that appeared as the layout of a page,
    ``overwrite=False`` marks data that must not replace existing target data,
    and ``skip`` is set once an existence check finds the target already has it.
    """

    url: str
    data: Any
    is_layout: bool = False
    overwrite: Optional[bool] = None
    skip: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize asset to dictionary."""
        result = {'url': self.url, 'data': self.data}
        if self.is_layout:
            result['isLayout'] = True
        if self.overwrite is not None:
            result['overwrite'] = self.overwrite
        if self.skip:
            result['skip'] = True
        return result


@dataclass
class PutResult:
    """Result of writing one asset to a target site."""

    url: Optional[str]
    status: ResultStatus
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != ResultStatus.ERROR

    def to_dict(self) -> Dict[str, Any]:
        """Serialize result to dictionary."""
        result = {'url': self.url, 'status': self.status.value}
        if self.message:
            result['message'] = self.message
        return result


@dataclass
class LintResult:
    """Result of checking that one reference resolves."""

    status: ResultStatus
    url: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        result = {'result': self.status.value}
        if self.url:
            result['url'] = self.url
        if self.message:
            result['message'] = self.message
        return result


@dataclass
class QueryResult:
    """Structured response from a search endpoint query."""

    type: str
    details: str
    message: Optional[str] = None
    data: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0

    @property
    def ok(self) -> bool:
        return self.type == 'success'

    def to_dict(self) -> Dict[str, Any]:
        result = {'type': self.type, 'details': self.details}
        if self.message:
            result['message'] = self.message
        if self.ok:
            result['data'] = self.data
            result['total'] = self.total
        return result


@dataclass
class TaskResult:
    """Outcome of one unit of work run through a worker pool."""

    item: Any
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ExportSession:
    """Per-run deduplication state shared by every step of one export or import.

    Tracks which layouts have already been emitted so that pages sharing a
    layout only emit it once. A session must not be reused across unrelated
    runs; call ``clear()`` or create a new one.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('claycli.models')
        self._exported_layouts: Set[str] = set()
        self._lock = threading.Lock()

    def claim_layout(self, uri: str) -> bool:
        """
        Mark a layout as exported.

        Args:
            uri: Layout URI (prefix stripped or not, as long as callers agree)

        Returns:
            True if this call claimed the layout, False if it was already exported
        """
        with self._lock:
            if uri in self._exported_layouts:
                self.logger.debug(f"Layout already exported in this run: {uri}")
                return False
            self._exported_layouts.add(uri)
            return True

    def clear(self) -> None:
        """Forget every exported layout."""
        with self._lock:
            count = len(self._exported_layouts)
            self._exported_layouts.clear()
        self.logger.debug(f"Cleared export session ({count} layouts)")


__all__ = [
    'AssetType',
    'ResultStatus',
    'Asset',
    'PutResult',
    'LintResult',
    'QueryResult',
    'TaskResult',
    'ExportSession',
]
