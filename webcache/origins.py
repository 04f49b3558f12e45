"""
Origins are the external sources behind a CachedResource.

An origin knows how to name its cache directory, how to decide whether the
cached copy is stale, and how to perform a conditional fetch. Everything
else (properties, hooks, persistence) is shared by CachedResource.
"""
from abc import ABC, abstractmethod

from webcache.fetch_result import FetchResult


class ResourceOrigin(ABC):
    """Abstract base class for external resource origins."""

    @property
    @abstractmethod
    def name(self) -> str:
        """
        A simple name for logging, such as "/home/me/data.csv" or
        "https://site.com/path/resource.json".
        """
        pass

    @property
    @abstractmethod
    def cache_dir(self) -> str:
        """Storage directory for this origin's artifacts."""
        pass

    @abstractmethod
    def is_expired(self, resource, context) -> bool:
        """Whether the cached copy should be refreshed.

        Only called when both properties and a cached body exist.
        """
        pass

    @abstractmethod
    def fetch(self, resource) -> FetchResult:
        """
        Conditionally fetch the resource.

        May update resource.properties and write extra artifacts, such as
        response headers.

        Raises:
            OSError: On transport failures
        """
        pass
