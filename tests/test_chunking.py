import pytest

from upload_engine.chunking import ChunkPlan


@pytest.mark.parametrize(
    "total_size, chunk_size",
    [(0, 10), (1, 10), (10, 10), (11, 10), (120, 10), (1000, 7), (7, 1000)],
)
def test_ranges_cover_file_contiguously(total_size, chunk_size):
    plan = ChunkPlan(total_size, chunk_size)
    ranges = list(plan.ranges())

    assert plan.total_chunks == -(-total_size // chunk_size)
    assert len(ranges) == plan.total_chunks
    assert sum(end - start for start, end in ranges) == total_size

    position = 0
    for start, end in ranges:
        assert start == position
        assert end > start
        position = end
    assert position == total_size


def test_last_chunk_is_the_remainder():
    plan = ChunkPlan(25, 10)

    assert plan.total_chunks == 3
    assert plan.byte_range(0) == (0, 10)
    assert plan.byte_range(2) == (20, 25)
    assert plan.chunk_length(1) == 10
    assert plan.chunk_length(2) == 5


def test_bytes_for_sums_selected_chunks():
    plan = ChunkPlan(25, 10)
    assert plan.bytes_for([0, 2]) == 15
    assert plan.bytes_for([]) == 0


def test_twelve_chunk_file():
    mb = 1024 * 1024
    plan = ChunkPlan(120 * mb, 10 * mb)
    assert plan.total_chunks == 12
    assert plan.byte_range(11) == (110 * mb, 120 * mb)


@pytest.mark.parametrize("chunk_size", [0, -1])
def test_rejects_non_positive_chunk_size(chunk_size):
    with pytest.raises(ValueError):
        ChunkPlan(100, chunk_size)


def test_rejects_negative_total_size():
    with pytest.raises(ValueError):
        ChunkPlan(-1, 10)


@pytest.mark.parametrize("index", [-1, 3])
def test_rejects_out_of_range_index(index):
    with pytest.raises(ValueError):
        ChunkPlan(25, 10).byte_range(index)
