"""Tests for the asset manager and the module level asset system."""

import pytest

from assetflow.core import asset_manager
from assetflow.core.asset_manager import AssetManager
from assetflow.core.config import LoaderConfig
from assetflow.core.fetch import FileFetcher
from conftest import Destroyable


@pytest.fixture
def uninitialized(monkeypatch):
	monkeypatch.setattr(asset_manager, "_manager", None)


def test_module_api_requires_initialize(uninitialized) -> None:
	with pytest.raises(RuntimeError):
		asset_manager.get_manager()
	with pytest.raises(RuntimeError):
		asset_manager.load("a.txt")
	with pytest.raises(RuntimeError):
		asset_manager.load_file("a.txt", lambda _: None)


def test_initialize(uninitialized, clock) -> None:
	config = LoaderConfig(max_concurrent_loads=3)
	manager = asset_manager.initialize(clock, config)

	try:
		assert asset_manager.get_manager() is manager
		assert manager.clock is clock
		assert manager.config is config
		assert isinstance(manager.fetcher, FileFetcher)
		assert manager.fetcher.max_concurrent_loads == 3
		assert [(d.task_class.__name__, d.priority) for d in manager.registry] == [
			("TextureAtlasTask", 30),
			("ColorAlphaTask", 20),
			("FunctionTask", 10),
			("LoadTask", 0),
			("ListTask", 0),
		]

		replacement = asset_manager.initialize(clock)
		assert asset_manager.get_manager() is replacement
		with pytest.raises(RuntimeError):
			manager.cache.read("anything")
	finally:
		asset_manager.get_manager().destroy()


def test_module_load_redirects(uninitialized, clock, fetcher) -> None:
	m = AssetManager(clock, fetcher=fetcher)
	asset_manager.register_default_tasks(m.registry)
	asset_manager._manager = m

	results = []
	asset_manager.load(["a.txt"], results.append, parallel=False)
	asset_manager.load_file("img/b.png", results.append, cache=True)
	fetcher.release_all()

	assert results == [["a.txt content"], "img/b.png content"]
	assert m.cache.read("b") == "img/b.png content"


def test_config_defaults_apply_to_loads(clock, fetcher) -> None:
	manager = AssetManager(clock, LoaderConfig(parallel=False, cache_all=True), fetcher)
	asset_manager.register_default_tasks(manager.registry)

	manager.load(["x/one.txt", "x/two.txt"])
	assert fetcher.requested == ["x/one.txt"]
	fetcher.release("x/one.txt")
	fetcher.release("x/two.txt")

	assert sorted(manager.cache.keys()) == ["one", "two"]
	manager.destroy()


def test_load_file_progress(manager, fetcher) -> None:
	fractions = []
	results = []
	manager.load_file("a.txt", results.append, fractions.append, data=1)

	assert fetcher.pending[0].data == 1
	fetcher.release("a.txt")
	assert fractions == [1.0]
	assert results == ["a.txt content"]


def test_loads_are_tracked(manager, fetcher) -> None:
	load = manager.load(["a.txt", "b.txt"])
	assert manager.loads == [load]
	fetcher.release_all()
	assert manager.loads == []


def test_destroy(manager, fetcher) -> None:
	kept = Destroyable()
	manager.cache.write("kept", kept)
	callbacks = []
	results = []
	load = manager.load([callbacks.append], results.append)

	manager.destroy()

	assert load.destroyed
	assert manager.loads == []
	assert kept.destroy_calls == 1
	assert fetcher.shut_down

	callbacks[0]("late")
	assert results == []
