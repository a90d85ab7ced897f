"""Tests for the timeout and cancellation envelope around repository calls."""

import asyncio

import pytest
from sample_records import Hero

from storekit.adapters import MemoryStoreAdapter
from storekit.builders import RangeQueryBuilder
from storekit.cancellation import CancellationToken
from storekit.errors import CANCELLED_MESSAGE, OperationTimeoutOrCancelledError
from storekit.repository import Operation, Repository, RepositorySettings


@pytest.fixture
def slow_adapter(heroes: list[Hero]) -> MemoryStoreAdapter[Hero]:
    return MemoryStoreAdapter(Hero, records=heroes, latency=1.0)


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_builder_timeout_elapses(
        self,
        slow_adapter: MemoryStoreAdapter[Hero],
        settings: RepositorySettings,
    ) -> None:
        """A read slower than its timeout is aborted."""
        repository = Repository(slow_adapter, settings)

        with pytest.raises(OperationTimeoutOrCancelledError) as exc_info:
            await repository.get_range(
                RangeQueryBuilder().with_disable_constraints().with_timeout(0.05)
            )

        assert str(exc_info.value) == CANCELLED_MESSAGE
        assert exc_info.value.operation == "get_range"
        assert repository.get_metrics()["get_range_error"] == 1

    @pytest.mark.asyncio
    async def test_default_timeout_from_settings(
        self,
        slow_adapter: MemoryStoreAdapter[Hero],
        heroes: list[Hero],
    ) -> None:
        """Operations without a builder override use the configured default."""
        repository = Repository(
            slow_adapter,
            RepositorySettings(get_by_id_timeout=0.05),
        )

        with pytest.raises(OperationTimeoutOrCancelledError):
            await repository.get_by_id(heroes[0].id)

    @pytest.mark.asyncio
    async def test_fast_call_within_timeout(
        self,
        heroes: list[Hero],
        settings: RepositorySettings,
    ) -> None:
        adapter = MemoryStoreAdapter(Hero, records=heroes, latency=0.01)
        repository = Repository(adapter, settings)

        result = await repository.get_range(
            lambda q: q.with_disable_constraints().with_timeout(2)
        )

        assert len(result) == 5

    def test_verb_defaults(self, settings: RepositorySettings) -> None:
        """Range deletes and updates get the longest defaults."""
        assert settings.timeout_for(Operation.EXISTS) == 10
        assert settings.timeout_for(Operation.GET_SINGLE) == 20
        assert settings.timeout_for(Operation.REMOVE) == 20
        assert settings.timeout_for(Operation.REMOVE_RANGE) == 40
        assert settings.timeout_for(Operation.UPDATE_RANGE) == 40
        assert settings.timeout_for(Operation.RESTORE_RANGE) == 40
        assert settings.timeout_for(Operation.COMMIT) == settings.transaction_timeout


class TestCallerCancellation:
    @pytest.mark.asyncio
    async def test_token_cancels_in_flight_call(
        self,
        slow_adapter: MemoryStoreAdapter[Hero],
        settings: RepositorySettings,
    ) -> None:
        """The caller's token aborts the call with the same fault kind."""
        repository = Repository(slow_adapter, settings)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel, "user left")

        with pytest.raises(OperationTimeoutOrCancelledError) as exc_info:
            await repository.get_range(cancellation=token)

        assert str(exc_info.value) == CANCELLED_MESSAGE
        assert token.cancelled is True
        assert token.reason == "user left"

    @pytest.mark.asyncio
    async def test_cancelled_token_fails_before_io(
        self,
        repository: Repository[Hero],
        adapter: MemoryStoreAdapter[Hero],
    ) -> None:
        token = CancellationToken()
        token.cancel()
        adapter.fail_with = AssertionError("adapter must not be reached")

        with pytest.raises(OperationTimeoutOrCancelledError):
            await repository.count(cancellation=token)

    @pytest.mark.asyncio
    async def test_cancelled_command_is_not_persisted(
        self,
        slow_adapter: MemoryStoreAdapter[Hero],
        settings: RepositorySettings,
    ) -> None:
        repository = Repository(slow_adapter, settings)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        with pytest.raises(OperationTimeoutOrCancelledError):
            await repository.add(
                lambda b: b.with_entity(Hero(name="Late")).with_save_changes(),
                cancellation=token,
            )

        assert slow_adapter.pending_count == 0
        assert slow_adapter.stored_count() == 5

    @pytest.mark.asyncio
    async def test_token_shared_by_concurrent_calls(
        self,
        slow_adapter: MemoryStoreAdapter[Hero],
        settings: RepositorySettings,
    ) -> None:
        """One token cancels every operation it was passed to."""
        repository = Repository(slow_adapter, settings)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        results = await asyncio.gather(
            repository.count(cancellation=token),
            repository.get_range(cancellation=token),
            return_exceptions=True,
        )

        assert all(
            isinstance(result, OperationTimeoutOrCancelledError) for result in results
        )
