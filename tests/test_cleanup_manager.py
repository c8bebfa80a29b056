"""
Tests for the deletion mode controller: planning, end-to-end runs and abort handling.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from bson import ObjectId
from pymongo.errors import AutoReconnect, OperationFailure
import pytest

from db_sanitizer.exceptions import CleanupAborted, DatabaseConnectionError, InvalidOptions
from db_sanitizer.managers.cleanup_manager import CleanupOptions, DeletionModeController
from db_sanitizer.models import CleanupMode, DeletionStrategy, OutcomeStatus
from db_sanitizer.sweeps import (
    FullWipeSweep,
    OrphanDetector,
    PatternMatcher,
    ProtectedBulkSweep,
    RecencyFilter,
    SchemaResetSweep,
)


class TestCleanupOptions:
    def test_defaults(self):
        options = CleanupOptions().validate()
        assert options.mode == CleanupMode.NORMAL
        assert options.recent_hours == 48

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"patterns_only": True, "recent_only": True},
            {"mode": CleanupMode.FULL_WIPE, "patterns_only": True},
            {"mode": CleanupMode.PROTECTED_BULK, "recent_only": True},
            {"recent_hours": 0},
            {"recent_hours": -5},
        ],
    )
    def test_invalid_combinations(self, kwargs):
        with pytest.raises(InvalidOptions):
            CleanupOptions(**kwargs).validate()


class TestPlan:
    @pytest.mark.parametrize(
        "options, expected",
        [
            (CleanupOptions(), [PatternMatcher, RecencyFilter, OrphanDetector]),
            (CleanupOptions(patterns_only=True), [PatternMatcher]),
            (CleanupOptions(recent_only=True), [RecencyFilter, OrphanDetector]),
            (CleanupOptions(mode=CleanupMode.PROTECTED_BULK), [ProtectedBulkSweep]),
            (CleanupOptions(mode=CleanupMode.FULL_WIPE), [FullWipeSweep]),
            (CleanupOptions(mode=CleanupMode.SCHEMA_RESET), [SchemaResetSweep]),
        ],
    )
    def test_plan(self, db_manager, registry, options, expected):
        controller = DeletionModeController(db_manager, options, registry=registry)
        assert [type(sweep) for sweep in controller.plan()] == expected

    def test_recent_hours_and_dry_run_are_passed_down(self, db_manager, registry, fixed_clock):
        controller = DeletionModeController(
            db_manager, CleanupOptions(recent_hours=6, dry_run=True), registry=registry, clock=fixed_clock
        )
        recency = controller.plan()[1]
        assert recency.hours == 6
        assert all(sweep.dry_run for sweep in controller.plan())

    def test_invalid_options_rejected_at_construction(self, db_manager, registry):
        with pytest.raises(InvalidOptions):
            DeletionModeController(db_manager, CleanupOptions(patterns_only=True, recent_only=True), registry=registry)


class TestRun:
    @pytest.mark.asyncio
    async def test_patterns_only_scenario(self, db_manager, registry, database, seed, fixed_clock):
        await seed(
            "users",
            [
                {"email": "owner@northwind.io", "name": "Store Owner", "role": "admin"},
                {"email": "test1@shop.com", "role": "user"},
                {"email": "demo@demo.com", "role": "user"},
                {"email": "real.customer@mail.com", "role": "user"},
            ],
        )
        controller = DeletionModeController(
            db_manager, CleanupOptions(patterns_only=True), registry=registry, clock=fixed_clock
        )
        report = await controller.run()

        assert report.total_deleted == 2
        assert report.deleted_by("users", DeletionStrategy.PATTERN) == 2
        assert report.pre_run_counts["users"] == 4
        assert report.post_run_counts["users"] == 2
        assert report.pre_run_counts["banners"] == 0
        # every registered collection reports an outcome, missing ones as skipped
        assert len(report.outcomes) == len(registry)
        assert report.per_collection["banners"][0].status == OutcomeStatus.SKIPPED
        assert not report.aborted

    @pytest.mark.asyncio
    async def test_normal_mode_is_idempotent(self, db_manager, registry, database, seed, fixed_clock, now):
        old = now - timedelta(days=60)
        (category_id,) = await seed("categories", [{"name": "Shirts", "createdAt": old}])
        (admin_id,) = await seed("users", [{"email": "owner@northwind.io", "role": "admin", "createdAt": now}])
        product_ids = await seed(
            "products",
            [
                {"name": "Linen Shirt", "category": category_id, "createdAt": old},
                {"name": "Sample Shirt", "category": category_id, "createdAt": old},
                {"name": "New Shirt", "category": category_id, "createdAt": now - timedelta(hours=1)},
            ],
        )
        await seed(
            "reviews",
            [{"product": pid, "user": admin_id, "createdAt": old, "comment": "Nice"} for pid in product_ids],
        )
        await seed("wishlists", [{"product": ObjectId(), "user": admin_id, "createdAt": old}])

        first = await DeletionModeController(db_manager, registry=registry, clock=fixed_clock).run()
        second = await DeletionModeController(db_manager, registry=registry, clock=fixed_clock).run()

        assert first.deleted_by("products", DeletionStrategy.PATTERN) == 1
        assert first.deleted_by("products", DeletionStrategy.RECENCY) == 1
        assert first.deleted_by("reviews", DeletionStrategy.ORPHAN) == 2
        assert first.deleted_by("wishlists", DeletionStrategy.ORPHAN) == 1
        assert first.total_deleted == 5
        assert second.total_deleted == 0
        assert await database.users.count_documents({}) == 1
        for collection, deleted in first.count_deltas().items():
            assert deleted == sum(o.deleted_count for o in first.per_collection.get(collection, []))

    @pytest.mark.asyncio
    async def test_dry_run_mutates_nothing(self, db_manager, registry, database, seed, fixed_clock):
        await seed("users", [{"email": "test@test.com", "role": "user"}, {"email": "demo@demo.com"}])
        report = await DeletionModeController(
            db_manager, CleanupOptions(dry_run=True), registry=registry, clock=fixed_clock
        ).run()

        assert report.dry_run
        assert report.total_deleted == 0
        assert await database.users.count_documents({}) == 2
        statuses = {o.status for o in report.per_collection["users"]}
        assert OutcomeStatus.DRY_RUN in statuses

    @pytest.mark.asyncio
    async def test_nuclear_mode(self, db_manager, registry, database, seed, fixed_clock):
        await seed("users", [{"email": "owner@northwind.io", "role": "admin"}, {"email": "buyer@mail.com"}])
        await seed("carts", [{"items": []}])
        report = await DeletionModeController(
            db_manager, CleanupOptions(mode=CleanupMode.PROTECTED_BULK), registry=registry, clock=fixed_clock
        ).run()

        assert report.total_deleted == 2
        assert report.post_run_counts["users"] == 1
        assert report.post_run_counts["carts"] == 0


class TestAbort:
    @pytest.mark.asyncio
    async def test_connection_loss_keeps_partial_results(self, db_manager, registry, seed, fixed_clock):
        await seed("users", [{"email": "test1@shop.com"}, {"email": "buyer@mail.com"}])
        await seed("products", [{"name": "placeholder"}])

        broken = MagicMock()
        broken.count_documents = AsyncMock(return_value=3)
        broken.find.return_value.to_list = AsyncMock(return_value=[])
        broken.delete_many = AsyncMock(side_effect=AutoReconnect("connection reset"))
        real_require = db_manager.require_collection

        async def require_collection(name):
            if name == "products":
                return broken
            return await real_require(name)

        db_manager.require_collection = require_collection
        controller = DeletionModeController(
            db_manager, CleanupOptions(patterns_only=True), registry=registry, clock=fixed_clock
        )

        with pytest.raises(CleanupAborted) as exc_info:
            await controller.run()

        report = exc_info.value.report
        assert report.aborted
        assert report.deleted_by("users", DeletionStrategy.PATTERN) == 1
        failed = report.failed_outcomes()
        assert [(o.collection, o.matched_count) for o in failed] == [("products", 3)]
        assert report.total_deleted == 1
        assert report.post_run_counts == {}
        # nothing after the failing collection was attempted
        assert "productvariants" not in report.per_collection

    @pytest.mark.asyncio
    async def test_connection_loss_before_any_sweep(self, db_manager, registry, fixed_clock):
        db_manager.count_documents = AsyncMock(side_effect=DatabaseConnectionError("server went away"))
        controller = DeletionModeController(db_manager, registry=registry, clock=fixed_clock)

        with pytest.raises(CleanupAborted) as exc_info:
            await controller.run()
        assert exc_info.value.report.outcomes == ()
        assert "server went away" in exc_info.value.report.error

    @pytest.mark.asyncio
    async def test_listing_denied_fails_each_collection_without_aborting(self, db_manager, registry, seed, fixed_clock):
        await seed("users", [{"email": "test1@shop.com"}])
        db_manager.list_collection_names = AsyncMock(side_effect=OperationFailure("not authorized", 13))
        controller = DeletionModeController(db_manager, registry=registry, clock=fixed_clock)

        report = await controller.run()

        assert not report.aborted
        assert report.outcomes
        assert all(o.status == OutcomeStatus.FAILED for o in report.outcomes)
        assert {o.strategy for o in report.outcomes} == {
            DeletionStrategy.PATTERN,
            DeletionStrategy.RECENCY,
            DeletionStrategy.ORPHAN,
        }
        assert report.total_deleted == 0
