"""Member paths and the member-resolution extension hook.

A field reference such as ``"SimpleOrders.customer.address.streetAddress"``
names a collection followed by a member path.  When the member path has
more than one segment the reference reaches *through* a member, and a
collaborator may want to compile it as something other than a plain column
(most often a ``jsonGet`` on a JSON column).  The formatter announces every
such reference through :class:`ResolvingMemberEmitter` before compiling it.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MemberPath:
    """A parsed ``collection.member[.member...]`` or bare ``member`` path.

    Attributes:
        collection: Collection qualifier, or ``None`` for unqualified paths.
        members: Member segments after the collection.
    """

    collection: str | None
    members: tuple[str, ...]

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, ref: str, collections: Collection[str] | None = None) -> MemberPath:
        """Parse a dotted reference relative to the known ``collections``.

        When ``collections`` is given, a leading segment naming one of them
        is taken as the qualifier and everything after it as the member
        path.  Otherwise a path of two or more segments is read as
        ``collection.member``.

        Args:
            ref: The raw dotted reference.
            collections: Collection names and aliases in scope, if known.

        Returns:
            A :class:`MemberPath` instance.
        """
        parts = ref.split(".")
        if collections is not None:
            if len(parts) > 1 and parts[0] in collections:
                return cls(collection=parts[0], members=tuple(parts[1:]))
            return cls(collection=None, members=tuple(parts))
        if len(parts) > 1:
            return cls(collection=parts[0], members=tuple(parts[1:]))
        return cls(collection=None, members=tuple(parts))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def qualified(self) -> bool:
        """True when the path includes a collection qualifier."""
        return self.collection is not None

    @property
    def nested(self) -> bool:
        """True when the member path reaches through another member."""
        return len(self.members) > 1

    @property
    def member(self) -> str:
        """The member path without the collection (``customer.name``)."""
        return ".".join(self.members)

    def __str__(self) -> str:
        if self.collection:
            return f"{self.collection}.{self.member}"
        return self.member


@dataclass
class MemberResolvingEvent:
    """Mutable event passed to ``resolving_join_member`` subscribers.

    Attributes:
        target: The query expression being formatted.
        fully_qualified_member: Member path relative to the collection,
            e.g. ``"customer.address.streetAddress"``.
        object: The collection that owns the member; subscribers may
            replace it.
        member: Replacement operand; ``None`` keeps the default rendering.
    """

    target: Any
    fully_qualified_member: str
    object: str | None = None
    member: Any = None


Subscriber = Callable[[MemberResolvingEvent], None]


@dataclass
class ResolvingMemberEmitter:
    """Synchronous subscriber list for member-resolution events."""

    _subscribers: list[Subscriber] = field(default_factory=list)

    def subscribe(self, handler: Subscriber) -> Subscriber:
        """Register ``handler``; returns it so it can be used as a decorator."""
        if handler not in self._subscribers:
            self._subscribers.append(handler)
        return handler

    def unsubscribe(self, handler: Subscriber) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def emit(self, event: MemberResolvingEvent) -> MemberResolvingEvent:
        """Notify every subscriber in registration order."""
        for handler in list(self._subscribers):
            handler(event)
        return event

    def __len__(self) -> int:
        return len(self._subscribers)
