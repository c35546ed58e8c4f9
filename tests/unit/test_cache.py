"""Unit tests for content-addressed output naming."""

import hashlib

import pytest

from imaginator.contexts.queueing.cache import ContentCache, content_hash
from imaginator.contexts.rendering.exceptions import UnknownRendererError, ValidationError


@pytest.mark.unit
def test_content_hash_is_md5_hex():
    assert content_hash("a") == "0cc175b9c0f1b6a831c399e269772661"
    assert content_hash("é") == hashlib.md5("é".encode("utf-8")).hexdigest()


@pytest.mark.unit
def test_name_uses_processed_code_and_format(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)

    assert cache.name("echo", "x^2") == f"{content_hash('x^2')}.txt"


@pytest.mark.unit
def test_surrounding_whitespace_does_not_change_name(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)

    assert cache.name("echo", "  x^2\n") == cache.name("echo", "x^2")
    assert cache.name("echo", "x^2") != cache.name("echo", "x^3")


@pytest.mark.unit
def test_prepare_returns_processed_code(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)

    name, processed = cache.prepare("echo", "\n a+b \n")

    assert processed == "a+b"
    assert name.endswith(".txt")


@pytest.mark.unit
def test_prepare_rejects_invalid_input(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)

    with pytest.raises(ValidationError) as exc_info:
        cache.prepare("echo", "forbidden")
    assert exc_info.value.tokens == ["forbidden"]


@pytest.mark.unit
def test_prepare_unknown_kind(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)

    with pytest.raises(UnknownRendererError):
        cache.prepare("mermaid", "graph TD")


@pytest.mark.unit
def test_is_cached_checks_disk(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)
    name = cache.name("echo", "a")

    assert not cache.is_cached(name)
    (tmp_path / name).write_text("a")
    assert cache.is_cached(name)
    (tmp_path / name).unlink()
    assert not cache.is_cached(name)


@pytest.mark.unit
@pytest.mark.parametrize("name", ["", ".", "..", "../etc/passwd", "sub/x.png", "a\\b.png"])
def test_path_rejects_non_plain_names(tmp_path, registry, name):
    cache = ContentCache(tmp_path, registry)

    with pytest.raises(ValidationError):
        cache.path(name)


@pytest.mark.unit
def test_path_inside_output_dir(tmp_path, registry):
    cache = ContentCache(tmp_path, registry)

    assert cache.path("abc.png") == tmp_path / "abc.png"
