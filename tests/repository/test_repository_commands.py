"""Tests for add, update, remove and restore through the repository."""

import pytest
from sample_records import Hero

from storekit.adapters import MemoryStoreAdapter
from storekit.builders import (
    AddSingleBuilder,
    RemoveSingleBuilder,
    RemoveStrategy,
    RestoreSingleBuilder,
)
from storekit.errors import (
    ConfigurationError,
    InvalidStrategyError,
    StoreFaultError,
)
from storekit.repository import Repository


class TestAdd:
    @pytest.mark.asyncio
    async def test_add_is_staged_by_default(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
    ) -> None:
        hero = await repository.add(
            lambda b: b.with_entity(Hero(name="Fay")).with_created_by("alice")
        )

        assert hero.created_by == "alice"
        assert adapter.pending_count == 1
        assert adapter.stored(hero.id) is None
        assert await repository.count() == 5

    @pytest.mark.asyncio
    async def test_add_with_save_changes(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
    ) -> None:
        hero = await repository.add(
            AddSingleBuilder().with_entity(Hero(name="Fay")).with_save_changes()
        )

        stored = adapter.stored(hero.id)
        assert stored is not None
        assert stored.name == "Fay"
        assert adapter.pending_count == 0

    @pytest.mark.asyncio
    async def test_add_range(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
    ) -> None:
        added = await repository.add_range(
            lambda b: b.with_entities(
                [Hero(name="Gus"), Hero(name="Hal")]
            ).with_save_changes()
        )

        assert [h.name for h in added] == ["Gus", "Hal"]
        assert adapter.stored_count() == 7

    @pytest.mark.asyncio
    async def test_add_without_entity(self, repository: Repository[Hero]) -> None:
        with pytest.raises(ConfigurationError):
            await repository.add(AddSingleBuilder())


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove_by_predicate_without_match(
        self,
        repository: Repository[Hero],
    ) -> None:
        """Zero matches is a normal result."""
        removed = await repository.remove(
            lambda b: b.with_filter(lambda h: h.name == "Nobody").with_save_changes()
        )

        assert removed == 0

    @pytest.mark.asyncio
    async def test_remove_by_identifier_soft_deletes(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        target = heroes[1]

        removed = await repository.remove(
            lambda b: b.with_identifier(target.id)
            .with_removed_by("admin")
            .with_save_changes()
        )

        stored = adapter.stored(target.id)
        assert removed == 1
        assert stored is not None
        assert stored.is_deleted is True
        assert stored.updated_by == "admin"
        assert await repository.get_by_id(target.id) is None
        assert await repository.count(ignore_query_filters=True) == 5

    @pytest.mark.asyncio
    async def test_remove_then_restore_round_trip(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        """Restore after a soft remove brings back an identical record."""
        before = adapter.stored(heroes[0].id)
        assert before is not None

        await repository.remove(
            lambda b: b.with_filter(lambda h: h.name == "Ada").with_save_changes()
        )
        restored = await repository.restore(
            lambda b: b.with_identifier(heroes[0].id).with_save_changes()
        )

        after = adapter.stored(heroes[0].id)
        assert restored == 1
        assert after is not None
        assert after.is_deleted is False
        unchanged = {"id", "name", "power", "team", "created_at", "created_by"}
        assert after.model_dump(include=unchanged) == before.model_dump(
            include=unchanged
        )

    @pytest.mark.asyncio
    async def test_remove_detached_instance(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        """A record that is not tracked is attached before it is flagged."""
        detached = heroes[3].model_copy()
        assert not adapter.is_tracked(detached)

        removed = await repository.remove(
            lambda b: b.with_entity(detached).with_save_changes()
        )

        assert removed == 1
        assert detached.is_deleted is True
        assert adapter.stored(detached.id).is_deleted is True

    @pytest.mark.asyncio
    async def test_remove_missing_instance(self, repository: Repository[Hero]) -> None:
        assert await repository.remove(lambda b: b.with_entity(Hero(name="New"))) == 0

    @pytest.mark.asyncio
    async def test_remove_directly_is_irreversible(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        """Direct removal deletes the row; a later restore finds nothing."""
        target = heroes[4].id

        removed = await repository.remove(
            lambda b: b.with_identifier(target).with_execute_directly()
        )
        restored = await repository.restore(
            lambda b: b.with_identifier(target).with_save_changes()
        )

        assert removed == 1
        assert adapter.stored(target) is None
        assert restored == 0
        assert await repository.count(ignore_query_filters=True) == 4

    @pytest.mark.asyncio
    async def test_remove_directly_by_predicate_single(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
    ) -> None:
        """The single variant deletes at most one match."""
        removed = await repository.remove(
            lambda b: b.with_filter(lambda h: h.team == "red").with_execute_directly()
        )

        assert removed == 1
        assert adapter.stored_count() == 4

    @pytest.mark.asyncio
    async def test_remove_range_by_predicate(
        self,
        repository: Repository[Hero],
    ) -> None:
        removed = await repository.remove_range(
            lambda b: b.with_filter(lambda h: h.team == "red").with_save_changes()
        )

        assert removed == 3
        assert await repository.count() == 2

    @pytest.mark.asyncio
    async def test_remove_range_by_identifiers_directly(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        removed = await repository.remove_range(
            lambda b: b.with_identifiers(
                [heroes[0].id, heroes[1].id, "unknown"]
            ).with_execute_directly()
        )

        assert removed == 2
        assert adapter.stored_count() == 3

    @pytest.mark.asyncio
    async def test_remove_without_strategy(self, repository: Repository[Hero]) -> None:
        with pytest.raises(InvalidStrategyError):
            await repository.remove(RemoveSingleBuilder())

    @pytest.mark.asyncio
    async def test_strategy_override_without_payload(
        self,
        repository: Repository[Hero],
        heroes: list[Hero],
    ) -> None:
        """Overriding to a strategy with no payload fails at execution."""
        builder = (
            RemoveSingleBuilder()
            .with_entity(heroes[0])
            .with_remove_strategy(RemoveStrategy.BY_IDENTIFIER)
        )

        with pytest.raises(InvalidStrategyError) as exc_info:
            await repository.remove(builder)

        assert exc_info.value.strategy is RemoveStrategy.BY_IDENTIFIER
        assert repository.get_metrics()["remove_error"] == 1

    @pytest.mark.asyncio
    async def test_staged_remove_not_persisted(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        await repository.remove(lambda b: b.with_identifier(heroes[0].id))

        assert adapter.pending_count == 1
        assert adapter.stored(heroes[0].id).is_deleted is False


class TestUpdateAndRestore:
    @pytest.mark.asyncio
    async def test_update_tracked(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        hero = await repository.get_by_id(heroes[0].id)
        assert hero is not None
        hero.power = 95

        updated = await repository.update(
            lambda b: b.with_entity(hero).with_updated_by("bob").with_save_changes()
        )

        stored = adapter.stored(hero.id)
        assert updated == 1
        assert stored.power == 95
        assert stored.updated_by == "bob"
        assert stored.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_detached(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        detached = heroes[1].model_copy(update={"power": 41})

        updated = await repository.update_range(
            lambda b: b.with_entities([detached]).with_save_changes()
        )

        assert updated == 1
        assert adapter.stored(detached.id).power == 41

    @pytest.mark.asyncio
    async def test_update_missing_record(self, repository: Repository[Hero]) -> None:
        assert await repository.update(lambda b: b.with_entity(Hero(name="X"))) == 0

    @pytest.mark.asyncio
    async def test_restore_tracked_and_detached_converge(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        """Tracked and detached restores persist the same state."""
        await repository.remove_range(
            lambda b: b.with_identifiers([heroes[0].id, heroes[1].id])
            .with_save_changes()
        )
        tracked = await repository.get_single(
            lambda q: q.with_filter(lambda h: h.id == heroes[0].id)
            .with_ignore_query_filters()
        )
        detached = adapter.stored(heroes[1].id)
        assert tracked is not None and adapter.is_tracked(tracked)
        assert detached is not None and not adapter.is_tracked(detached)

        await repository.restore(RestoreSingleBuilder().with_entity(tracked))
        await repository.restore(
            lambda b: b.with_entity(detached)
            .with_restored_by("carol")
            .with_save_changes()
        )

        first = adapter.stored(heroes[0].id)
        second = adapter.stored(heroes[1].id)
        assert first.is_deleted is False and second.is_deleted is False
        assert second.updated_by == "carol"
        assert detached.is_deleted is False

    @pytest.mark.asyncio
    async def test_restore_range_by_identifiers(
        self,
        repository: Repository[Hero],
        heroes: list[Hero],
    ) -> None:
        ids = [h.id for h in heroes[:3]]
        await repository.remove_range(
            lambda b: b.with_identifiers(ids).with_save_changes()
        )

        restored = await repository.restore_range(
            lambda b: b.with_identifiers(ids).with_save_changes()
        )

        assert restored == 3
        assert await repository.count() == 5

    @pytest.mark.asyncio
    async def test_restore_without_target(self, repository: Repository[Hero]) -> None:
        with pytest.raises(InvalidStrategyError):
            await repository.restore(RestoreSingleBuilder())


class TestFaults:
    @pytest.mark.asyncio
    async def test_adapter_failure_wrapped(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
    ) -> None:
        """Backend exceptions surface as StoreFaultError with the cause kept."""
        boom = ConnectionError("store unreachable")
        adapter.fail_with = boom

        with pytest.raises(StoreFaultError) as exc_info:
            await repository.get_range()

        assert exc_info.value.__cause__ is boom
        assert exc_info.value.operation == "get_range"
        assert exc_info.value.entity_type == "Hero"
        assert repository.get_metrics()["get_range_error"] == 1

    @pytest.mark.asyncio
    async def test_save_failure_wrapped(
        self,
        repository: Repository[Hero],
        heroes: list[Hero],
    ) -> None:
        """A duplicate key raised while saving becomes a store fault."""
        duplicate = heroes[0].model_copy()

        with pytest.raises(StoreFaultError) as exc_info:
            await repository.add(
                lambda b: b.with_entity(duplicate).with_save_changes()
            )

        assert isinstance(exc_info.value.__cause__, KeyError)
