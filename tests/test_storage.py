from unittest.mock import MagicMock

from upload_engine.services import LocalAssetStore, MinioAssetStore, StagingStorage


async def test_staging_writes_at_offsets(tmp_path):
    staging = StagingStorage(tmp_path / "staging")
    await staging.allocate("s1", 10)
    await staging.write_at("s1", 5, b"world")
    await staging.write_at("s1", 0, b"hello")

    assert staging.path("s1").read_bytes() == b"helloworld"
    assert staging.delete("s1") is True
    assert staging.delete("s1") is False


async def test_local_store_deduplicates(tmp_path):
    source = tmp_path / "blob"
    source.write_bytes(b"payload")
    store = LocalAssetStore(tmp_path / "assets")
    store.ensure_ready()

    assert await store.store(source, "v1/assets/aa/bb/aabb", "text/plain") is True
    assert await store.store(source, "v1/assets/aa/bb/aabb", "text/plain") is False
    assert store.path_for("v1/assets/aa/bb/aabb").read_bytes() == b"payload"

    store.delete("v1/assets/aa/bb/aabb")
    assert not store.exists("v1/assets/aa/bb/aabb")


async def test_minio_store_creates_bucket_and_uploads(tmp_path):
    client = MagicMock()
    client.bucket_exists.return_value = False
    store = MinioAssetStore("minio:9000", "key", "secret", bucket="assets", client=client)

    store.ensure_ready()
    client.make_bucket.assert_called_once_with("assets")

    source = tmp_path / "blob"
    source.write_bytes(b"payload")
    client.stat_object.return_value = object()
    assert await store.store(source, "v1/assets/aa/bb/aabb", "video/mp4") is False
    client.fput_object.assert_not_called()

    store.put_file(source, "v1/assets/aa/bb/aabb", "video/mp4")
    client.fput_object.assert_called_once_with(
        "assets", "v1/assets/aa/bb/aabb", str(source), content_type="video/mp4"
    )

    store.delete("v1/assets/aa/bb/aabb")
    client.remove_object.assert_called_once_with("assets", "v1/assets/aa/bb/aabb")
