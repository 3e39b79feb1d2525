"""Key/value session storage scoped to a single browsing context."""
from typing import Dict, List, Optional


class SessionStorage:
    """In-memory string store for one browsing context.
    
    Nothing is written to disk, so entries never outlive the process that
    owns the context. A new :class:`~src.session.SessionManager` built on
    the same storage object (a page reload) sees the same entries.
    """
    
    def __init__(self) -> None:
        self._items: Dict[str, str] = {}
    
    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)
    
    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Session storage only holds strings, got {type(value).__name__}")
        self._items[key] = value
    
    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)
    
    def keys(self) -> List[str]:
        return list(self._items)
    
    def clear(self) -> None:
        self._items.clear()
    
    def __len__(self) -> int:
        return len(self._items)
    
    def __contains__(self, key: object) -> bool:
        return key in self._items
