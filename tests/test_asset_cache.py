"""Tests for the asset cache and value teardown."""

import pytest

from assetflow.core.asset_cache import AssetCache, destroy_value
from conftest import Destroyable, FakeImage


def test_write_destroys_previous() -> None:
	cache = AssetCache()
	v1 = Destroyable("v1")
	v2 = Destroyable("v2")

	cache.write("k", v1)
	cache.write("k", v2)

	assert v1.destroy_calls == 1
	assert v2.destroy_calls == 0
	assert cache.read("k") is v2


def test_delete_destroys_nested_values() -> None:
	cache = AssetCache()
	r1 = Destroyable("r1")
	r2 = Destroyable("r2")
	cache.write("group", {"x": r1, "y": [r2, None]})

	cache.delete("group")

	assert r1.destroy_calls == 1
	assert r2.destroy_calls == 1
	assert "group" not in cache
	assert cache.read("group") is None


def test_delete_by_descriptor() -> None:
	cache = AssetCache()
	v = Destroyable()
	cache.write("hero", v)

	cache.delete({"src": "img/hero.png", "id": "hero"})

	assert v.destroy_calls == 1
	assert len(cache) == 0


def test_delete_unknown_is_noop() -> None:
	cache = AssetCache()
	cache.delete("missing")
	cache.delete({"src": "no-id.png"})
	assert len(cache) == 0


def test_read_missing_returns_none() -> None:
	assert AssetCache().read("nope") is None


def test_empty() -> None:
	cache = AssetCache()
	values = [Destroyable(str(i)) for i in range(3)]
	for i, v in enumerate(values):
		cache.write(str(i), v)

	cache.empty()

	assert all(v.destroy_calls == 1 for v in values)
	assert cache.keys() == []


def test_destroyed_cache_is_unusable() -> None:
	cache = AssetCache()
	v = Destroyable()
	cache.write("a", v)
	cache.destroy()
	cache.destroy()

	assert v.destroy_calls == 1
	with pytest.raises(RuntimeError):
		cache.read("a")
	with pytest.raises(RuntimeError):
		cache.write("a", 1)


def test_destroy_value_leaves() -> None:
	class ImageLike:
		src = "img.png"

	image = FakeImage(1, 1, b"\x00" * 4)
	image_like = ImageLike()
	destroyable = Destroyable()

	destroy_value((image, [image_like, {"d": destroyable}], "plain string", 3, None))

	assert image.deleted
	assert image_like.src == ""
	assert destroyable.destroy_calls == 1
