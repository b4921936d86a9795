"""
Catalog Service

Categories, subcategories, tags and transaction groups: the labels a
transaction can carry.

Visibility rules:
- System categories are visible to everyone and cannot be changed
- A user sees system categories plus their own
- Subcategories follow their category
- Tags and groups are private to their owner

Deleting a label never deletes transactions. References to it are
cleared; a deleted category also takes its subcategories and budgets.
"""

from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

import structlog

from fintrack.audit import AuditLogger
from fintrack.ledger.errors import DuplicateNameError, OwnershipError
from fintrack.models.finance import (
    Category,
    Subcategory,
    Tag,
    TransactionGroup,
    build_system_categories,
)
from fintrack.services.storage import FinanceStorage, NotFoundError


logger = structlog.get_logger(__name__)


def _same_name(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


def _missing(names: list[str], by_name: dict, build: Callable[[str], Any]) -> list:
    """One new record per name absent from by_name, first spelling wins."""
    new = {}
    for name in names:
        key = name.strip().lower()
        if key and key not in by_name and key not in new:
            new[key] = build(name.strip())
    return list(new.values())


class CatalogService:
    """Labels used to organise transactions."""

    def __init__(
        self,
        storage: FinanceStorage,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def ensure_system_categories(self) -> list[Category]:
        """Seed the built-in categories once; return them."""
        existing = await self._storage.categories.list(is_system=True)
        if existing:
            return existing

        seeded = build_system_categories()
        await self._storage.categories.insert_many(seeded)
        logger.info("system_categories_seeded", count=len(seeded))
        return seeded

    async def list_categories(self, user_id: UUID) -> list[Category]:
        """System categories first, then the user's own, each by name."""
        system = await self._storage.categories.list(is_system=True)
        own = await self._storage.categories.list(user_id=user_id)
        return (
            sorted(system, key=lambda c: c.name.lower())
            + sorted(own, key=lambda c: c.name.lower())
        )

    async def get_category(self, user_id: UUID, category_id: UUID) -> Category:
        """
        Raises:
            NotFoundError: If missing or another user's category
        """
        category = await self._storage.categories.get(category_id)
        if category is None or not (category.is_system or category.user_id == user_id):
            raise NotFoundError(f"Category not found: {category_id}")
        return category

    async def find_category(self, user_id: UUID, name: str) -> Optional[Category]:
        """Visible category with this name, ignoring case. User's own wins."""
        matches = [
            c for c in await self.list_categories(user_id)
            if _same_name(c.name, name)
        ]
        own = [c for c in matches if not c.is_system]
        return (own or matches or [None])[0]

    async def create_category(
        self,
        user_id: UUID,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        if await self.find_category(user_id, name):
            raise DuplicateNameError("categories", name)

        category = Category(user_id=user_id, name=name, icon=icon, color=color)
        await self._storage.categories.insert(category)
        logger.info("category_created", category_id=str(category.id))
        return category

    async def update_category(
        self,
        user_id: UUID,
        category_id: UUID,
        **changes: Any,
    ) -> Category:
        """
        Rename or recolour one of the user's categories.

        Raises:
            OwnershipError: For system categories
        """
        current = await self._get_writable_category(user_id, category_id)
        changes = {k: v for k, v in changes.items() if k in ("name", "icon", "color")}

        new_name = changes.get("name")
        if new_name and not _same_name(new_name, current.name):
            if await self.find_category(user_id, new_name):
                raise DuplicateNameError("categories", new_name)

        updated = Category.model_validate({**current.model_dump(), **changes})
        return await self._storage.categories.update(updated)

    async def delete_category(
        self,
        user_id: UUID,
        category_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete one of the user's categories with its subcategories and budgets.

        Transactions keep their text labels but lose the ids.
        """
        await self._get_writable_category(user_id, category_id)

        subcategories = await self._storage.subcategories.list(category_id=category_id)
        for sub in subcategories:
            await self._storage.subcategories.delete(sub.id)

        for budget in await self._storage.budgets.list(category_id=category_id):
            await self._storage.budgets.delete(budget.id)
            if self._audit_logger:
                await self._audit_logger.log_record_deleted(
                    user_id=budget.user_id,
                    table_name="budgets",
                    record_id=budget.id,
                    old_data=budget.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )

        await self._clear_transaction_refs(
            user_id, correlation_id,
            match={"category_id": category_id},
            clear=("category_id", "subcategory_id"),
        )

        deleted = await self._storage.categories.delete(category_id)
        logger.info(
            "category_deleted",
            category_id=str(category_id),
            subcategories_removed=len(subcategories),
        )
        return deleted

    async def category_lookup(
        self,
        user_id: UUID,
    ) -> tuple[dict[str, Category], dict[tuple[UUID, str], Subcategory]]:
        """
        Visible categories by lowercased name (user's own win) and their
        subcategories by (category id, lowercased name), read once.
        """
        categories: dict[str, Category] = {}
        for category in await self.list_categories(user_id):
            key = category.name.strip().lower()
            if key not in categories or not category.is_system:
                categories[key] = category

        visible = {c.id for c in categories.values()}
        subcategories = {
            (s.category_id, s.name.strip().lower()): s
            for s in await self._storage.subcategories.list()
            if s.category_id in visible
        }
        return categories, subcategories

    async def _get_writable_category(self, user_id: UUID, category_id: UUID) -> Category:
        category = await self.get_category(user_id, category_id)
        if category.is_system:
            raise OwnershipError(f"System category '{category.name}' is read-only")
        return category

    # =========================================================================
    # SUBCATEGORIES
    # =========================================================================

    async def list_subcategories(
        self,
        user_id: UUID,
        category_id: Optional[UUID] = None,
    ) -> list[Subcategory]:
        """Subcategories of visible categories, optionally of one category."""
        if category_id is not None:
            await self.get_category(user_id, category_id)
            subs = await self._storage.subcategories.list(category_id=category_id)
        else:
            visible = {c.id for c in await self.list_categories(user_id)}
            subs = [
                s for s in await self._storage.subcategories.list()
                if s.category_id in visible
            ]
        return sorted(subs, key=lambda s: s.name.lower())

    async def find_subcategory(self, category_id: UUID, name: str) -> Optional[Subcategory]:
        for sub in await self._storage.subcategories.list(category_id=category_id):
            if _same_name(sub.name, name):
                return sub
        return None

    async def create_subcategory(
        self,
        user_id: UUID,
        category_id: UUID,
        name: str,
        icon: Optional[str] = None,
    ) -> Subcategory:
        """
        Raises:
            OwnershipError: If the parent is a system category
        """
        await self._get_writable_category(user_id, category_id)
        if await self.find_subcategory(category_id, name):
            raise DuplicateNameError("subcategories", name)

        sub = Subcategory(category_id=category_id, name=name, subcategory_icon=icon)
        return await self._storage.subcategories.insert(sub)

    async def delete_subcategory(
        self,
        user_id: UUID,
        subcategory_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        sub = await self._storage.subcategories.get(subcategory_id)
        if sub is None:
            raise NotFoundError(f"Subcategory not found: {subcategory_id}")
        await self._get_writable_category(user_id, sub.category_id)

        await self._clear_transaction_refs(
            user_id, correlation_id,
            match={"subcategory_id": subcategory_id},
            clear=("subcategory_id",),
        )
        return await self._storage.subcategories.delete(subcategory_id)

    # =========================================================================
    # TAGS
    # =========================================================================

    async def list_tags(self, user_id: UUID) -> list[Tag]:
        tags = await self._storage.tags.list(user_id=user_id)
        return sorted(tags, key=lambda t: t.name.lower())

    async def find_tag(self, user_id: UUID, name: str) -> Optional[Tag]:
        for tag in await self._storage.tags.list(user_id=user_id):
            if _same_name(tag.name, name):
                return tag
        return None

    async def create_tag(
        self,
        user_id: UUID,
        name: str,
        color: Optional[str] = None,
    ) -> Tag:
        if await self.find_tag(user_id, name):
            raise DuplicateNameError("tags", name)
        tag = Tag(user_id=user_id, name=name, color=color)
        return await self._storage.tags.insert(tag)

    async def ensure_tags(
        self,
        user_id: UUID,
        names: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[dict[str, Tag], list[str]]:
        """
        Lowercased name -> tag for every name, creating the missing ones
        in one batch.

        Returns (tags_by_name, created_names).
        """
        existing = await self._storage.tags.list(user_id=user_id)
        by_name = {t.name.strip().lower(): t for t in existing}
        new_tags = _missing(names, by_name, lambda name: Tag(user_id=user_id, name=name))

        if new_tags:
            await self._storage.tags.insert_many(new_tags)
            by_name.update((t.name.lower(), t) for t in new_tags)
            if self._audit_logger:
                await self._audit_logger.log_entities_auto_created(
                    user_id, "tags", [(t.id, t.name) for t in new_tags], correlation_id,
                )
        return by_name, [t.name for t in new_tags]

    async def delete_tag(
        self,
        user_id: UUID,
        tag_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        tag = await self._storage.tags.get(tag_id)
        if tag is None or tag.user_id != user_id:
            raise NotFoundError(f"Tag not found: {tag_id}")

        await self._clear_transaction_refs(
            user_id, correlation_id,
            match={"tag_id": tag_id},
            clear=("tag_id",),
        )
        return await self._storage.tags.delete(tag_id)

    # =========================================================================
    # GROUPS
    # =========================================================================

    async def list_groups(self, user_id: UUID) -> list[TransactionGroup]:
        """Newest groups first."""
        groups = await self._storage.groups.list(user_id=user_id)
        return sorted(groups, key=lambda g: g.created_at, reverse=True)

    async def find_group(self, user_id: UUID, name: str) -> Optional[TransactionGroup]:
        for group in await self._storage.groups.list(user_id=user_id):
            if _same_name(group.name, name):
                return group
        return None

    async def create_group(self, group: TransactionGroup) -> TransactionGroup:
        if await self.find_group(group.user_id, group.name):
            raise DuplicateNameError("groups", group.name)
        await self._storage.groups.insert(group)
        logger.info("group_created", group_id=str(group.id))
        return group

    async def ensure_groups(
        self,
        user_id: UUID,
        names: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[dict[str, TransactionGroup], list[str]]:
        """Same as ensure_tags, for groups."""
        existing = await self._storage.groups.list(user_id=user_id)
        by_name = {g.name.strip().lower(): g for g in existing}
        new_groups = _missing(
            names, by_name, lambda name: TransactionGroup(user_id=user_id, name=name),
        )

        if new_groups:
            await self._storage.groups.insert_many(new_groups)
            by_name.update((g.name.lower(), g) for g in new_groups)
            if self._audit_logger:
                await self._audit_logger.log_entities_auto_created(
                    user_id, "groups", [(g.id, g.name) for g in new_groups], correlation_id,
                )
        return by_name, [g.name for g in new_groups]

    async def delete_group(
        self,
        user_id: UUID,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        group = await self._storage.groups.get(group_id)
        if group is None or group.user_id != user_id:
            raise NotFoundError(f"Group not found: {group_id}")

        await self._clear_transaction_refs(
            user_id, correlation_id,
            match={"group_id": group_id},
            clear=("group_id",),
        )
        return await self._storage.groups.delete(group_id)

    async def group_transaction_counts(self, user_id: UUID) -> dict[UUID, int]:
        counts: dict[UUID, int] = {}
        for txn in await self._storage.transactions.list(user_id=user_id):
            if txn.group_id is not None:
                counts[txn.group_id] = counts.get(txn.group_id, 0) + 1
        return counts

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _clear_transaction_refs(
        self,
        user_id: UUID,
        correlation_id: Optional[UUID],
        match: dict[str, UUID],
        clear: tuple[str, ...],
    ) -> int:
        """Null out references on every matching transaction; returns how many."""
        transactions = await self._storage.transactions.list(**match)
        for txn in transactions:
            old_data = txn.model_dump(mode="json")
            for field_name in clear:
                setattr(txn, field_name, None)
            txn.updated_at = datetime.utcnow()
            await self._storage.transactions.update(txn)
            if self._audit_logger:
                await self._audit_logger.log_record_updated(
                    user_id=txn.user_id,
                    table_name="transactions",
                    record_id=txn.id,
                    old_data=old_data,
                    new_data=txn.model_dump(mode="json"),
                    correlation_id=correlation_id,
                )
        return len(transactions)
