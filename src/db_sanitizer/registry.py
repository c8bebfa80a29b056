"""
Collection registry for the cleanup engine.

Static description of every collection the engine may touch: which text fields the pattern sweep
scans, which collection carries a protected role, and which reference fields point at which
parent collection. Nothing here talks to the database.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

# Text fields that can hold seeded/test values across the shop schemas
DEFAULT_TEXT_FIELDS: Tuple[str, ...] = (
    "name",
    "title",
    "description",
    "code",
    "email",
    "username",
    "firstName",
    "lastName",
    "fullName",
    "content",
    "address",
    "addressLine",
    "street",
    "city",
    "note",
    "comment",
    "slug",
    "excerpt",
    "recipient",
    "method",
    "type",
    "orderCode",
)

ADMIN_ROLE: str = "admin"


@dataclass(frozen=True)
class ProtectedRole:
    """Documents whose ``field`` equals ``value`` are exempt from recency and protected-bulk deletion."""

    field: str = "role"
    value: str = ADMIN_ROLE

    def exclusion_filter(self) -> Dict[str, Any]:
        return {self.field: {"$ne": self.value}}

    def selection_filter(self) -> Dict[str, Any]:
        return {self.field: self.value}


@dataclass(frozen=True)
class CollectionDescriptor:
    name: str
    scannable_text_fields: Tuple[str, ...] = DEFAULT_TEXT_FIELDS
    protected_role: Optional[ProtectedRole] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Collection name cannot be empty")
        if len(set(self.scannable_text_fields)) != len(self.scannable_text_fields):
            raise ValueError(f"Duplicate scannable text fields for collection '{self.name}'")


@dataclass(frozen=True)
class ReferenceCheck:
    """``dependent.field`` must hold the identifier of a live document in ``parent``."""

    dependent: str
    field: str
    parent: str


class CollectionRegistry:
    """Ordered, immutable set of collection descriptors plus the reference checks between them."""

    def __init__(self, descriptors: Iterable[CollectionDescriptor], reference_checks: Iterable[ReferenceCheck] = ()):
        self._descriptors: "OrderedDict[str, CollectionDescriptor]" = OrderedDict()
        for descriptor in descriptors:
            if descriptor.name in self._descriptors:
                raise ValueError(f"Collection '{descriptor.name}' registered twice")
            self._descriptors[descriptor.name] = descriptor

        self._reference_checks: Tuple[ReferenceCheck, ...] = tuple(reference_checks)
        for check in self._reference_checks:
            for name in (check.dependent, check.parent):
                if name not in self._descriptors:
                    raise ValueError(f"Reference check {check} names unregistered collection '{name}'")

    def __iter__(self) -> Iterator[CollectionDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    @property
    def names(self) -> List[str]:
        return list(self._descriptors.keys())

    @property
    def reference_checks(self) -> Tuple[ReferenceCheck, ...]:
        return self._reference_checks

    def get(self, name: str) -> CollectionDescriptor:
        try:
            return self._descriptors[name]
        except KeyError:
            raise KeyError(f"Collection '{name}' is not registered") from None

    def reference_groups(self) -> List[Tuple[CollectionDescriptor, Tuple[ReferenceCheck, ...]]]:
        """Reference checks grouped by dependent collection.

        A dependent that is also a parent of another group comes first, so deleting its orphans
        cannot leave fresh orphans behind in a group that was already evaluated.
        """
        grouped: "OrderedDict[str, List[ReferenceCheck]]" = OrderedDict()
        for check in self._reference_checks:
            grouped.setdefault(check.dependent, []).append(check)

        parents = {check.parent for check in self._reference_checks}
        ordered = [name for name in grouped if name in parents] + [name for name in grouped if name not in parents]
        return [(self._descriptors[name], tuple(grouped[name])) for name in ordered]


REGISTERED_COLLECTIONS: Tuple[str, ...] = (
    "users",
    "categories",
    "products",
    "productvariants",
    "colors",
    "sizes",
    "orders",
    "reviews",
    "wishlists",
    "addresses",
    "banners",
    "posts",
    "vouchers",
    "paymentmethods",
    "carts",
)

REFERENCE_CHECKS: Tuple[ReferenceCheck, ...] = (
    ReferenceCheck("wishlists", "product", "products"),
    ReferenceCheck("wishlists", "user", "users"),
    ReferenceCheck("reviews", "product", "products"),
    ReferenceCheck("reviews", "user", "users"),
    ReferenceCheck("productvariants", "product", "products"),
    ReferenceCheck("orders", "user", "users"),
    ReferenceCheck("addresses", "user", "users"),
    ReferenceCheck("products", "category", "categories"),
)


def build_default_registry() -> CollectionRegistry:
    descriptors = [
        CollectionDescriptor(name, protected_role=ProtectedRole() if name == "users" else None)
        for name in REGISTERED_COLLECTIONS
    ]
    return CollectionRegistry(descriptors, REFERENCE_CHECKS)


default_registry = build_default_registry()
