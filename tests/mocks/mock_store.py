from typing import Dict, List, Optional

from reconciler.core.exceptions import StateStoreError


class MockStateStore:
    """In-memory stand-in for RedisStateStore with the same method surface."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.writes: list = []  # Track mutating calls for testing
        self.should_fail = False

    def _check(self):
        if self.should_fail:
            raise StateStoreError("store unavailable")

    def ping(self) -> bool:
        self._check()
        return True

    def get(self, key: str) -> Optional[str]:
        self._check()
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self._check()
        self.writes.append(("set", key, value))
        self.values[key] = value

    def delete(self, key: str) -> None:
        self._check()
        self.writes.append(("delete", key))
        self.values.pop(key, None)
        self.lists.pop(key, None)

    def list_push(self, key: str, value: str) -> int:
        self._check()
        self.writes.append(("list_push", key, value))
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    def list_read(self, key: str) -> List[str]:
        self._check()
        return list(self.lists.get(key, []))

    def list_remove_oldest(self, key: str, count: int) -> None:
        self._check()
        self.writes.append(("list_remove_oldest", key, count))
        remaining = self.lists.get(key, [])[:-count] if count > 0 else self.lists.get(key, [])
        if remaining:
            self.lists[key] = remaining
        else:
            self.lists.pop(key, None)

    def claim(self, key: str, ttl_ms: int, token: str = "1") -> bool:
        self._check()
        if key in self.values:
            return False
        self.values[key] = token
        return True

    def compare_and_set(self, key: str, expected: Optional[str], new: Optional[str]) -> bool:
        self._check()
        if self.values.get(key) != expected:
            return False
        self.writes.append(("compare_and_set", key, new))
        if new is None:
            self.values.pop(key, None)
        else:
            self.values[key] = new
        return True

    def data_writes(self) -> list:
        """Writes excluding the short-lived claim markers."""
        return [w for w in self.writes if "claim" not in w[1]]
