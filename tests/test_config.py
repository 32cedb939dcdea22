import pytest

from upload_engine.core.config import Settings
from upload_engine.core.security import is_token_accepted
from upload_engine.services import LocalAssetStore, MinioAssetStore, build_asset_store, generate_storage_key


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("CHUNK_SIZE", "2048")
    monkeypatch.setenv("API_TOKENS", " alpha, beta ,")
    monkeypatch.setenv("MINIO_SECURE", "TRUE")

    settings = Settings()

    assert settings.CHUNK_SIZE == 2048
    assert settings.API_TOKENS == ["alpha", "beta"]
    assert settings.MINIO_SECURE is True
    assert settings.UPLOAD_CONCURRENCY == 2


def test_unknown_override_is_an_error():
    with pytest.raises(TypeError):
        Settings(NOT_A_SETTING=1)


def test_token_check():
    assert is_token_accepted("alpha", ["alpha", "beta"])
    assert not is_token_accepted("gamma", ["alpha", "beta"])
    assert is_token_accepted("anything", [])
    assert not is_token_accepted("", [])


def test_asset_backend_selection(tmp_path):
    local = build_asset_store(Settings(ASSET_BACKEND="local", ASSET_DIR=str(tmp_path)))
    assert isinstance(local, LocalAssetStore)

    minio = build_asset_store(Settings(ASSET_BACKEND="minio", MINIO_ENDPOINT="localhost:9000"))
    assert isinstance(minio, MinioAssetStore)
    assert minio.bucket == "upload-assets"

    with pytest.raises(ValueError):
        build_asset_store(Settings(ASSET_BACKEND="ftp"))


def test_storage_key_is_bucketed_by_hash_prefix():
    content_hash = "abcdef" + "0" * 58
    assert generate_storage_key(content_hash) == f"v1/assets/ab/cd/{content_hash}"
