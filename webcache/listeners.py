"""
Listeners registered against a CachedResource.

Listeners are consulted in registration order. The first listener that gives
a definite answer to is_expired() decides whether the resource is expired.
The save hooks run immediately before and after a newly fetched body is
written to the cache, for example to make a pretty printed copy.
"""
import json
import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class ResourceListener:
    """Base class for listeners. Every hook does nothing by default."""

    def pre_save_body(self, resource) -> None:
        pass

    def post_save_body(self, resource) -> None:
        pass

    def is_expired(self, resource, context) -> Optional[bool]:
        """True or False to decide expiry, or None for no opinion."""
        return None


class ListenerSlot(ResourceListener):
    """
    A listener whose implementation can be replaced after registration.

    Typically holds the expiry policy, so that the owner can switch to
    expiry.always() to force a refresh without rebuilding the resource.
    """

    def __init__(self, implementation: ResourceListener):
        self.implementation = implementation

    def pre_save_body(self, resource) -> None:
        self.implementation.pre_save_body(resource)

    def post_save_body(self, resource) -> None:
        self.implementation.post_save_body(resource)

    def is_expired(self, resource, context) -> Optional[bool]:
        return self.implementation.is_expired(resource, context)

    def __repr__(self):
        return f'ListenerSlot({self.implementation!r})'


class PrettyPrintJsonListener(ResourceListener):
    """Saves an indented copy of JSON bodies next to the original."""

    def __init__(self, suffix: str = 'pretty', indent: int = 2):
        self.suffix = suffix
        self.indent = indent

    def post_save_body(self, resource) -> None:
        properties = resource.properties
        if properties.body_extension != '.json':
            return

        # Nested read; the fetch in progress means this comes straight from the cache
        data = json.loads(resource.read_text(encoding=properties.charset or 'utf-8'))

        pretty = resource.artifact(properties.body_name(self.suffix))
        pretty.set_content(json.dumps(data, indent=self.indent, ensure_ascii=False) + '\n')
        logger.debug('Wrote pretty printed copy %s for %s', pretty.name, resource.name)


def first_expiry_opinion(listeners: Iterable[ResourceListener], resource, context) -> Optional[bool]:
    """Answer of the first listener with an opinion on expiry, or None."""
    for listener in listeners:
        expired = listener.is_expired(resource, context)
        if expired is not None:
            return expired
    return None
