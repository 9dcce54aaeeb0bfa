from abc import ABC, abstractmethod
from typing import Any


class ListingSource(ABC):
    name: str = "unknown"
    display_name: str = ""

    @abstractmethod
    def fetch(self) -> list[Any]:
        """Return the raw listing items, or raise SourceFetchError."""
