"""Service link list collector.

The services channel reads from the ServiceStore bound at startup.
"""

import logging
from typing import Dict, List, Optional

from core.registry import register_channel
from core.service_store import ServiceStore

logger = logging.getLogger(__name__)

_store: Optional[ServiceStore] = None


def bind_store(store: Optional[ServiceStore]):
    """Point the services channel at a store (None to unbind)."""
    global _store
    _store = store


@register_channel("services")
def read_services() -> List[Dict]:
    if _store is None:
        raise RuntimeError("No service store bound")
    return _store.get_all()
