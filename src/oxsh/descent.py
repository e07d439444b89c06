"""Working state for one recursive-descent pass: a token queue, a node
buffer and the span of the most recently consumed token."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, List, Optional, Union

from .token_types import Span, Tk
from .tree import Node

# A parse item is either a raw token or a construct already parsed by a
# nested builder call.
Item = Union[Tk, Node]


class DescentContext:
    def __init__(self, tokens: Iterable[Item] = ()):
        self.tokens: Deque[Item] = deque(tokens)
        self.root: Deque[Node] = deque()
        self.start = 0
        self.end = 0

    # ========================================================================
    # Token queue
    # ========================================================================

    def next_token(self) -> Optional[Item]:
        """Pop from the front and record its span as the current mark."""
        if not self.tokens:
            return None
        tk = self.tokens.popleft()
        self.start = tk.span.start
        self.end = tk.span.end
        return tk

    def last_token(self) -> Optional[Item]:
        return self.tokens.pop() if self.tokens else None

    def front_token(self) -> Optional[Item]:
        return self.tokens[0] if self.tokens else None

    def back_token(self) -> Optional[Item]:
        return self.tokens[-1] if self.tokens else None

    def push_front(self, tk: Item) -> None:
        self.tokens.appendleft(tk)

    def push_front_all(self, items: List[Item]) -> None:
        """Re-queue items at the front, preserving their order."""
        self.tokens.extendleft(reversed(items))

    # ========================================================================
    # Node buffer
    # ========================================================================

    def attach_node(self, node: Node) -> None:
        self.root.append(node)

    def next_node(self) -> Optional[Node]:
        return self.root.popleft() if self.root else None

    def last_node(self) -> Optional[Node]:
        return self.root.pop() if self.root else None

    def front_node(self) -> Optional[Node]:
        return self.root[0] if self.root else None

    def back_node(self) -> Optional[Node]:
        return self.root[-1] if self.root else None

    def take_nodes(self) -> List[Node]:
        nodes = list(self.root)
        self.root.clear()
        return nodes

    # ========================================================================
    # Marks
    # ========================================================================

    def mark_start(self) -> int:
        return self.start

    def mark_end(self) -> int:
        return self.end

    def mark_span(self) -> Span:
        return Span(self.start, self.end)

    def token_texts(self) -> List[str]:
        return [tk.text if isinstance(tk, Tk) else tk.label() for tk in self.tokens]
