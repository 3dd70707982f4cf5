"""Tests for the file fetcher."""

import json
from xml.etree.ElementTree import ElementTree

import pytest

from assetflow.core.asset_manager import AssetManager, register_default_tasks
from assetflow.core.config import LoaderConfig
from assetflow.core.fetch import FileFetcher, LoaderResult
from conftest import run_clock


@pytest.fixture
def asset_dir(tmp_path):
	(tmp_path / "hello.txt").write_text("hello world", encoding="utf-8")
	(tmp_path / "data.json").write_text(json.dumps({"a": [1, 2]}), encoding="utf-8")
	(tmp_path / "sheet.xml").write_text(
		'<TextureAtlas><SubTexture name="a" x="0" y="0" width="1" height="1"/></TextureAtlas>',
		encoding = "utf-8",
	)
	(tmp_path / "blob.dat").write_bytes(b"\x00\x01\x02")
	(tmp_path / "broken.json").write_text("{nope", encoding="utf-8")
	return tmp_path


def _fetch_all(fetcher, clock, urls, delay=0.0):
	results = {}
	for url in urls:
		fetcher.fetch(url, lambda r, url=url: results.__setitem__(url, r))
	run_clock(clock, lambda: len(results) == len(urls), delay=delay)
	return results


def test_decodes_by_extension(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, asset_dir, max_concurrent_loads=2)
	results = _fetch_all(fetcher, clock, ["hello.txt", "data.json", "sheet.xml", "blob.dat"])

	assert results["hello.txt"].content == "hello world"
	assert results["data.json"].content == {"a": [1, 2]}
	assert isinstance(results["sheet.xml"].content, ElementTree)
	assert results["sheet.xml"].content.getroot().tag == "TextureAtlas"
	assert results["blob.dat"].content == b"\x00\x01\x02"
	assert results["hello.txt"].url == "hello.txt"


def test_absolute_urls_ignore_base_path(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, "/definitely/not/here")
	path = str(asset_dir / "hello.txt")
	results = _fetch_all(fetcher, clock, [path])
	assert results[path].content == "hello world"


def test_completion_is_never_synchronous(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, asset_dir)
	results = []
	item = fetcher.fetch("hello.txt", results.append)

	assert results == []
	assert not item.done
	run_clock(clock, lambda: bool(results))
	assert item.done


def test_failures_complete_with_none(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, asset_dir)
	results = _fetch_all(fetcher, clock, ["missing.txt", "broken.json"])

	assert results == {"missing.txt": None, "broken.json": None}
	assert fetcher.active_count() == 0


def test_concurrency_limit_and_priority(clock, asset_dir) -> None:
	for name in ("a", "b", "c", "d"):
		(asset_dir / f"{name}.txt").write_text(name, encoding="utf-8")

	fetcher = FileFetcher(clock, asset_dir, max_concurrent_loads=1)
	order = []
	fetcher.fetch("a.txt", lambda r: order.append(r.content), priority=0)
	fetcher.fetch("b.txt", lambda r: order.append(r.content), priority=0)
	fetcher.fetch("c.txt", lambda r: order.append(r.content), priority=5)
	fetcher.fetch("d.txt", lambda r: order.append(r.content), priority=0)

	assert fetcher.active_count() == 1
	assert fetcher.pending_count() == 3
	run_clock(clock, lambda: len(order) == 4)

	assert order == ["a", "c", "b", "d"]


def test_progress_and_data(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, asset_dir)
	fractions = []
	results = []
	fetcher.fetch("hello.txt", results.append, fractions.append, data="extra")
	run_clock(clock, lambda: bool(results))

	assert fractions == [0.0, 1.0]
	assert results[0].data == "extra"


def test_register_decoder(clock, asset_dir) -> None:
	(asset_dir / "numbers.csv").write_text("1,2,3", encoding="utf-8")

	def decode_csv(path):
		with open(path, encoding="utf-8") as f:
			return [int(v) for v in f.read().split(",")]

	fetcher = FileFetcher(clock, asset_dir)
	fetcher.register_decoder(".CSV", decode_csv)
	results = _fetch_all(fetcher, clock, ["numbers.csv"])

	assert results["numbers.csv"].content == [1, 2, 3]


def test_threaded_reads(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, asset_dir, max_concurrent_loads=2, loader_threads=2)
	try:
		results = _fetch_all(
			fetcher, clock, ["hello.txt", "data.json", "missing.txt"], delay=0.01
		)
	finally:
		fetcher.shutdown()

	assert results["hello.txt"].content == "hello world"
	assert results["data.json"].content == {"a": [1, 2]}
	assert results["missing.txt"] is None


def test_shutdown_drops_queued_fetches(clock, asset_dir) -> None:
	fetcher = FileFetcher(clock, asset_dir, max_concurrent_loads=1)
	results = []
	fetcher.fetch("hello.txt", results.append)
	fetcher.fetch("data.json", results.append)
	fetcher.shutdown()

	assert fetcher.pending_count() == 0


def test_invalid_concurrency(clock) -> None:
	with pytest.raises(ValueError):
		FileFetcher(clock, max_concurrent_loads=0)


def test_loader_result_destroy() -> None:
	result = LoaderResult("content", "url", {"k": 1})
	result.destroy()
	assert (result.content, result.url, result.data) == (None, None, None)


def test_manager_loads_from_disk(clock, asset_dir) -> None:
	manager = AssetManager(clock, LoaderConfig(base_path=str(asset_dir)))
	register_default_tasks(manager.registry)
	results = []

	manager.load({"greeting": "hello.txt", "data": "data.json", "gone": "missing.txt"}, results.append)
	run_clock(clock, lambda: bool(results))
	manager.destroy()

	assert results == [{"greeting": "hello world", "data": {"a": [1, 2]}, "gone": None}]


@pytest.mark.parametrize("loader_threads", [0, 2])
def test_crashing_decoder_frees_its_slot(clock, asset_dir, loader_threads) -> None:
	def decode_cfg(path):
		raise KeyError("missing")

	fetcher = FileFetcher(clock, asset_dir, max_concurrent_loads=1, loader_threads=loader_threads)
	fetcher.register_decoder("cfg", decode_cfg)
	try:
		results = _fetch_all(fetcher, clock, ["a.cfg", "hello.txt"], delay=0.01 if loader_threads else 0.0)
	finally:
		fetcher.shutdown()

	assert results["a.cfg"] is None
	assert results["hello.txt"].content == "hello world"
	assert fetcher.active_count() == 0
	assert fetcher.pending_count() == 0
