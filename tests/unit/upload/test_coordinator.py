"""
Unit tests for the block upload coordinator.

Covers chunking into blocks, commit ordering, bounded concurrent staging,
empty inputs, and the failure modes of each upload step.
"""

import asyncio
import base64
import logging
import struct
import threading

import pytest

from blobgallery.core.config_manager import EmptyUploadPolicy, FinalizeMode, UploadConfig
from blobgallery.storage.exceptions import BlobNotFoundError, StoreError, StoreUnavailableError
from blobgallery.storage.memory import InMemoryObjectStore
from blobgallery.storage.models import ObjectProperties
from blobgallery.upload.blocks import make_block_id
from blobgallery.upload.coordinator import BlockUploadCoordinator
from blobgallery.upload.exceptions import (
    CommitError,
    EmptyUploadError,
    MetadataError,
    StagingError,
    StreamReadError,
)
from blobgallery.upload.streams import BytesInputStream


def _index_of(block_id: str) -> int:
    return struct.unpack("<i", base64.b64decode(block_id))[0]


class ScriptedStore(InMemoryObjectStore):
    """In-memory store that records calls and fails or stalls on request."""

    def __init__(self):
        super().__init__("test-container", create_container=True)
        self.calls = []
        self.fail_stage_at = None
        self.fail_commit = False
        self.fail_properties = False
        self.fail_metadata = False
        self.stage_delays = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def call_names(self):
        return [call[0] for call in self.calls]

    async def stage_block(self, name, block_id, data):
        index = _index_of(block_id)
        self.calls.append(("stage_block", index))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.stage_delays.get(index, 0))
            if index == self.fail_stage_at:
                raise StoreUnavailableError("simulated outage")
            await super().stage_block(name, block_id, data)
        finally:
            self.in_flight -= 1

    async def commit_block_list(self, name, block_ids, properties=None, metadata=None):
        self.calls.append(("commit_block_list", [_index_of(b) for b in block_ids]))
        if self.fail_commit:
            raise StoreError("simulated commit failure")
        return await super().commit_block_list(name, block_ids, properties, metadata)

    async def set_properties(self, name, properties):
        self.calls.append(("set_properties", properties))
        if self.fail_properties:
            raise StoreUnavailableError("simulated outage")
        await super().set_properties(name, properties)

    async def set_metadata(self, name, metadata):
        self.calls.append(("set_metadata", metadata))
        if self.fail_metadata:
            raise StoreUnavailableError("simulated outage")
        await super().set_metadata(name, metadata)


class RecordingStream(BytesInputStream):
    """Bytes stream that records every read and can fail at one offset."""

    def __init__(self, data: bytes, fail_at_offset=None):
        super().__init__(data)
        self.reads = []
        self.fail_at_offset = fail_at_offset

    def read_exact(self, offset, count):
        self.reads.append(offset)
        if offset == self.fail_at_offset:
            raise OSError("disk unplugged")
        return super().read_exact(offset, count)


PROPERTIES = ObjectProperties(content_type="image/png", cache_control="public,max-age=60480")
METADATA = {"filename": "photo.png"}


@pytest.fixture
def store():
    return ScriptedStore()


def _payload(size: int) -> bytes:
    return bytes(i % 251 for i in range(size))


class TestChunkedUpload:
    """Test the happy path of block uploads."""

    @pytest.mark.asyncio
    async def test_three_blocks_with_truncated_last(self, store):
        """250000 bytes at 100000 per block stage as 100000, 100000, 50000."""
        data = _payload(250_000)
        coordinator = BlockUploadCoordinator(store, max_block_size=100_000)

        receipt = await coordinator.upload_in_blocks(BytesInputStream(data), "big.bin", PROPERTIES, METADATA)

        assert receipt.block_ids == (make_block_id(0), make_block_id(1), make_block_id(2))
        assert receipt.block_count == 3
        assert receipt.size == 250_000
        assert receipt.committed is True

        info = await store.get_blob_info("big.bin")
        assert info.size == 250_000
        assert info.committed_blocks == [make_block_id(0), make_block_id(1), make_block_id(2)]

        download = await store.download_blob("big.bin")
        content = b"".join([chunk async for chunk in download.chunks])
        assert content == data

    @pytest.mark.asyncio
    async def test_exact_multiple_is_one_block(self, store):
        """100000 bytes at 100000 per block is exactly one block."""
        coordinator = BlockUploadCoordinator(store, max_block_size=100_000)

        receipt = await coordinator.upload_in_blocks(BytesInputStream(_payload(100_000)), "one.bin")

        assert receipt.block_count == 1
        assert store.call_names().count("stage_block") == 1
        assert (await store.get_blob_info("one.bin")).size == 100_000

    @pytest.mark.asyncio
    async def test_call_sequence_with_separate_finalize(self, store):
        """Stage each block, commit once, then set properties, then metadata."""
        coordinator = BlockUploadCoordinator(store, max_block_size=10)

        await coordinator.upload_in_blocks(BytesInputStream(b"x" * 25), "seq.bin", PROPERTIES, METADATA)

        assert store.call_names() == [
            "stage_block", "stage_block", "stage_block",
            "commit_block_list", "set_properties", "set_metadata",
        ]
        info = await store.get_blob_info("seq.bin")
        assert info.properties == PROPERTIES
        assert info.metadata == METADATA

    @pytest.mark.asyncio
    async def test_finalize_on_commit(self, store):
        """On-commit finalization passes properties and metadata with the commit."""
        coordinator = BlockUploadCoordinator(store, max_block_size=10, finalize_mode=FinalizeMode.ON_COMMIT)

        await coordinator.upload_in_blocks(BytesInputStream(b"x" * 25), "atomic.bin", PROPERTIES, METADATA)

        assert "set_properties" not in store.call_names()
        assert "set_metadata" not in store.call_names()
        info = await store.get_blob_info("atomic.bin")
        assert info.properties == PROPERTIES
        assert info.metadata == METADATA

    @pytest.mark.asyncio
    async def test_coordinator_is_reusable(self, store):
        """One coordinator serves consecutive uploads independently."""
        coordinator = BlockUploadCoordinator(store, max_block_size=4)

        first = await coordinator.upload_in_blocks(BytesInputStream(b"abcdefghij"), "a.txt")
        second = await coordinator.upload_in_blocks(BytesInputStream(b"xyz"), "b.txt")

        assert first.block_count == 3
        assert second.block_ids == (make_block_id(0),)

    @pytest.mark.asyncio
    async def test_from_config(self, store):
        """Coordinator settings come from the upload configuration."""
        config = UploadConfig(max_block_size=1234, max_concurrency=2)
        coordinator = BlockUploadCoordinator.from_config(store, config)
        assert coordinator.max_block_size == 1234

    @pytest.mark.asyncio
    async def test_chunks_are_read_off_the_event_loop(self, store):
        """Blocking chunk reads run in worker threads, not on the loop thread."""
        read_threads = []

        class ThreadRecordingStream(BytesInputStream):
            def read_exact(self, offset, count):
                read_threads.append(threading.get_ident())
                return super().read_exact(offset, count)

        coordinator = BlockUploadCoordinator(store, max_block_size=4)
        await coordinator.upload_in_blocks(ThreadRecordingStream(b"x" * 10), "threaded.bin")

        assert len(read_threads) == 3
        assert threading.get_ident() not in read_threads

    @pytest.mark.asyncio
    async def test_block_logs_carry_context(self, store, caplog):
        """Each staged block and the commit are logged with structured context."""
        caplog.set_level(logging.DEBUG, logger="blobgallery.upload.coordinator")
        coordinator = BlockUploadCoordinator(store, max_block_size=10, max_concurrency=2)

        await coordinator.upload_in_blocks(BytesInputStream(b"x" * 25), "logged.bin")

        staged = [r.context for r in caplog.records if r.getMessage().startswith("Staging block")]
        assert sorted((c["offset"], c["size"]) for c in staged) == [(0, 10), (10, 10), (20, 5)]
        assert sorted(c["block_id"] for c in staged) == sorted(make_block_id(i) for i in range(3))

        committed = [r.context for r in caplog.records if r.getMessage().startswith("Committed")]
        assert committed == [{"size": 25, "block_count": 3}]

    def test_invalid_bounds(self, store):
        """Non-positive block size and concurrency are rejected."""
        with pytest.raises(ValueError):
            BlockUploadCoordinator(store, max_block_size=0)
        with pytest.raises(ValueError):
            BlockUploadCoordinator(store, max_block_size=10, max_concurrency=0)


class TestConcurrentStaging:
    """Test bounded concurrent staging."""

    @pytest.mark.asyncio
    async def test_commit_order_ignores_completion_order(self, store):
        """Blocks finishing out of order are still committed by position."""
        store.stage_delays = {0: 0.05, 1: 0.0, 2: 0.02}
        data = b"aaaabbbbcc"
        coordinator = BlockUploadCoordinator(store, max_block_size=4, max_concurrency=3)

        receipt = await coordinator.upload_in_blocks(BytesInputStream(data), "order.bin")

        assert receipt.block_ids == (make_block_id(0), make_block_id(1), make_block_id(2))
        assert ("commit_block_list", [0, 1, 2]) in store.calls
        download = await store.download_blob("order.bin")
        assert b"".join([chunk async for chunk in download.chunks]) == data

    @pytest.mark.asyncio
    async def test_in_flight_staging_is_bounded(self, store):
        """No more than max_concurrency blocks are staged at once."""
        store.stage_delays = {i: 0.01 for i in range(10)}
        coordinator = BlockUploadCoordinator(store, max_block_size=1, max_concurrency=3)

        await coordinator.upload_in_blocks(BytesInputStream(b"0123456789"), "bounded.bin")

        assert store.max_in_flight <= 3
        assert store.max_in_flight > 1

    @pytest.mark.asyncio
    async def test_sequential_when_concurrency_is_one(self, store):
        """Concurrency of one stages strictly one block after the other."""
        store.stage_delays = {0: 0.02, 1: 0.01}
        coordinator = BlockUploadCoordinator(store, max_block_size=2, max_concurrency=1)

        await coordinator.upload_in_blocks(BytesInputStream(b"aabbcc"), "seq.bin")

        assert store.max_in_flight == 1
        staged = [call[1] for call in store.calls if call[0] == "stage_block"]
        assert staged == [0, 1, 2]


class TestEmptyInput:
    """Test the zero-length upload policies."""

    @pytest.mark.asyncio
    async def test_skip_makes_no_store_calls(self, store):
        """Skip policy returns an uncommitted receipt without touching the store."""
        coordinator = BlockUploadCoordinator(store, max_block_size=10, empty_upload_policy=EmptyUploadPolicy.SKIP)

        receipt = await coordinator.upload_in_blocks(BytesInputStream(b""), "empty.txt", PROPERTIES, METADATA)

        assert receipt.committed is False
        assert receipt.block_count == 0
        assert store.calls == []
        with pytest.raises(BlobNotFoundError):
            await store.get_blob_info("empty.txt")

    @pytest.mark.asyncio
    async def test_commit_creates_zero_byte_object(self, store):
        """Commit policy commits an empty block list and finalizes."""
        coordinator = BlockUploadCoordinator(store, max_block_size=10, empty_upload_policy=EmptyUploadPolicy.COMMIT)

        receipt = await coordinator.upload_in_blocks(BytesInputStream(b""), "empty.txt", PROPERTIES, METADATA)

        assert receipt.committed is True
        assert store.call_names() == ["commit_block_list", "set_properties", "set_metadata"]
        info = await store.get_blob_info("empty.txt")
        assert info.size == 0
        assert info.metadata == METADATA

    @pytest.mark.asyncio
    async def test_reject_raises_before_store_calls(self, store):
        """Reject policy raises EmptyUploadError."""
        coordinator = BlockUploadCoordinator(store, max_block_size=10, empty_upload_policy=EmptyUploadPolicy.REJECT)

        with pytest.raises(EmptyUploadError) as exc_info:
            await coordinator.upload_in_blocks(BytesInputStream(b""), "empty.txt")

        assert exc_info.value.error_code == "EmptyUpload"
        assert store.calls == []


class TestUploadFailures:
    """Test failure reporting of each upload step."""

    @pytest.mark.asyncio
    async def test_staging_failure_skips_commit(self, store):
        """A failed block is reported by index and nothing is committed."""
        store.fail_stage_at = 1
        coordinator = BlockUploadCoordinator(store, max_block_size=100_000)

        with pytest.raises(StagingError) as exc_info:
            await coordinator.upload_in_blocks(BytesInputStream(_payload(250_000)), "broken.bin")

        error = exc_info.value
        assert error.sequence_index == 1
        assert error.block_id == make_block_id(1)
        assert error.content_stored is False
        assert isinstance(error.__cause__, StoreUnavailableError)
        assert "commit_block_list" not in store.call_names()
        with pytest.raises(BlobNotFoundError):
            await store.get_blob_info("broken.bin")
        assert make_block_id(0) in await store.get_uncommitted_block_ids("broken.bin")

    @pytest.mark.asyncio
    async def test_staging_failure_stops_reading(self, store):
        """Sequential staging reads no block past the failed one."""
        store.fail_stage_at = 1
        stream = RecordingStream(b"x" * 40)
        coordinator = BlockUploadCoordinator(store, max_block_size=10, max_concurrency=1)

        with pytest.raises(StagingError):
            await coordinator.upload_in_blocks(stream, "stop.bin")

        assert stream.reads == [0, 10]

    @pytest.mark.asyncio
    async def test_lowest_failing_index_is_reported(self, store):
        """With several concurrent failures the earliest position wins."""
        store.fail_stage_at = 2
        store.stage_delays = {2: 0.0, 0: 0.03}

        original = store.stage_block

        async def fail_zero_late(name, block_id, data):
            if _index_of(block_id) == 0:
                await asyncio.sleep(0.03)
                raise StoreUnavailableError("late failure")
            await original(name, block_id, data)

        store.stage_block = fail_zero_late
        coordinator = BlockUploadCoordinator(store, max_block_size=1, max_concurrency=3)

        with pytest.raises(StagingError) as exc_info:
            await coordinator.upload_in_blocks(BytesInputStream(b"abc"), "multi.bin")

        assert exc_info.value.sequence_index == 0

    @pytest.mark.asyncio
    async def test_stream_read_failure(self, store):
        """A read error stops the upload before any commit."""
        stream = RecordingStream(b"x" * 30, fail_at_offset=10)
        coordinator = BlockUploadCoordinator(store, max_block_size=10, max_concurrency=1)

        with pytest.raises(StreamReadError) as exc_info:
            await coordinator.upload_in_blocks(stream, "unreadable.bin")

        assert exc_info.value.offset == 10
        assert exc_info.value.count == 10
        assert "commit_block_list" not in store.call_names()

    @pytest.mark.asyncio
    async def test_commit_failure(self, store):
        """A rejected block list raises CommitError; no object appears."""
        store.fail_commit = True
        coordinator = BlockUploadCoordinator(store, max_block_size=10)

        with pytest.raises(CommitError) as exc_info:
            await coordinator.upload_in_blocks(BytesInputStream(b"x" * 25), "uncommitted.bin")

        assert exc_info.value.block_count == 3
        assert exc_info.value.content_stored is False
        assert "set_properties" not in store.call_names()
        with pytest.raises(BlobNotFoundError):
            await store.get_blob_info("uncommitted.bin")

    @pytest.mark.asyncio
    async def test_metadata_failure_keeps_content_and_retry_repairs(self, store):
        """Metadata failure leaves the object in place; finalize alone repairs it."""
        store.fail_metadata = True
        data = _payload(250_000)
        coordinator = BlockUploadCoordinator(store, max_block_size=100_000)

        with pytest.raises(MetadataError) as exc_info:
            await coordinator.upload_in_blocks(BytesInputStream(data), "partial.bin", PROPERTIES, METADATA)

        error = exc_info.value
        assert error.stage == "metadata"
        assert error.content_stored is True

        info = await store.get_blob_info("partial.bin")
        assert info.size == 250_000
        assert info.metadata == {}
        download = await store.download_blob("partial.bin")
        assert b"".join([chunk async for chunk in download.chunks]) == data

        staged_before_retry = store.call_names().count("stage_block")
        store.fail_metadata = False
        await coordinator.finalize("partial.bin", PROPERTIES, METADATA)

        assert store.call_names().count("stage_block") == staged_before_retry
        assert store.call_names().count("commit_block_list") == 1
        assert (await store.get_blob_info("partial.bin")).metadata == METADATA

    @pytest.mark.asyncio
    async def test_properties_failure_reports_stage(self, store):
        """A properties failure is reported before metadata is attempted."""
        store.fail_properties = True
        coordinator = BlockUploadCoordinator(store, max_block_size=10)

        with pytest.raises(MetadataError) as exc_info:
            await coordinator.upload_in_blocks(BytesInputStream(b"abc"), "props.bin", PROPERTIES, METADATA)

        assert exc_info.value.stage == "properties"
        assert "set_metadata" not in store.call_names()

    @pytest.mark.asyncio
    async def test_cancellation_never_commits(self, store):
        """Cancelling the caller cancels staging and issues no commit."""
        store.stage_delays = {i: 5.0 for i in range(4)}
        coordinator = BlockUploadCoordinator(store, max_block_size=1, max_concurrency=2)

        task = asyncio.create_task(coordinator.upload_in_blocks(BytesInputStream(b"abcd"), "cancelled.bin"))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert "commit_block_list" not in store.call_names()
        assert store.in_flight == 0
