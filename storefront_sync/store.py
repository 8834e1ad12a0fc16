"""Last-known-good configuration holder."""

import logging
import threading
from typing import Callable, NamedTuple, Optional

from .models import ConfigDocument

logger = logging.getLogger(__name__)

ReplaceListener = Callable[[ConfigDocument], None]


class ConfigSnapshot(NamedTuple):
    document: Optional[ConfigDocument]
    error: Optional[Exception]
    version: int


class ConfigStore:
    """
    Holds the current ConfigDocument.

    Documents are immutable, so a swap is a single reference assignment made
    under the lock together with the error flag and version. Readers always
    see a whole document from one fetch.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._document: Optional[ConfigDocument] = None
        self._error: Optional[Exception] = None
        self._version = 0
        self._listeners: list[ReplaceListener] = []

    def get(self) -> Optional[ConfigDocument]:
        """Current document, or None before the first successful load."""
        with self._lock:
            return self._document

    def last_error(self) -> Optional[Exception]:
        with self._lock:
            return self._error

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return ConfigSnapshot(self._document, self._error, self._version)

    def replace(self, document: ConfigDocument) -> int:
        """
        Atomically swap in a new document and clear the error flag.

        Returns:
            The new version number
        """
        with self._lock:
            self._document = document
            self._error = None
            self._version += 1
            version = self._version
            listeners = list(self._listeners)

        logger.info(f"Configuration replaced (version {version})")
        for listener in listeners:
            try:
                listener(document)
            except Exception as e:
                logger.error(f"Configuration listener failed: {e}", exc_info=True)
        return version

    def record_error(self, error: Exception) -> None:
        """Flag a failed load without discarding the current document."""
        with self._lock:
            self._error = error
            has_document = self._document is not None
        if has_document:
            logger.warning(f"Keeping previous configuration after error: {error}")
        else:
            logger.warning(f"No configuration loaded: {error}")

    def add_listener(self, listener: ReplaceListener) -> Callable[[], None]:
        """
        Register a callback run after every replace.

        Returns:
            A function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove
