from dataclasses import dataclass, asdict
from typing import List

DEFAULT = "default"
DESTRUCTIVE = "destructive"


@dataclass
class Notice:
    """User-facing, non-blocking notification (rendered by the client as a toast)."""
    title: str
    description: str = ""
    variant: str = DEFAULT

    def to_dict(self) -> dict:
        return asdict(self)


class NoticeBuffer:
    """Collects notices until the HTTP layer drains them into a response."""

    def __init__(self):
        self._items: List[Notice] = []

    def notify(self, title: str, description: str = "", variant: str = DEFAULT) -> Notice:
        n = Notice(title=title, description=description, variant=variant)
        self._items.append(n)
        return n

    def peek(self) -> List[Notice]:
        return list(self._items)

    def drain(self) -> List[Notice]:
        out, self._items = self._items, []
        return out

    def __len__(self) -> int:
        return len(self._items)
