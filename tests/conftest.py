"""Shared fixtures for the assetflow tests."""

import itertools
from time import sleep
import typing as t

import pytest
from pyglet.clock import Clock

from assetflow.core.asset_manager import AssetManager, register_default_tasks
from assetflow.core.fetch import BaseFetcher, LoaderItem, LoaderResult


class FakeFetcher(BaseFetcher):
	"""
	Fetcher that never completes anything on its own. Tests release
	pending fetches by hand, in whatever order they like.
	"""

	def __init__(self) -> None:
		self.pending: t.List[LoaderItem] = []
		self.requested: t.List[str] = []
		self.shut_down = False

	def fetch(self, url, complete, progress=None, priority=0, data=None) -> LoaderItem:
		item = LoaderItem(url, url, complete, progress, priority, data)
		self.pending.append(item)
		self.requested.append(url)
		return item

	def release(self, url: str, content: t.Any = None, fail: bool = False) -> None:
		"""
		Completes the oldest pending fetch of ``url``, with ``content``
		or ``"<url> content"`` if that is not given.
		"""
		for i, item in enumerate(self.pending):
			if item.url == url:
				break
		else:
			raise AssertionError(f"No pending fetch of {url!r}")

		del self.pending[i]
		item.done = True
		if fail:
			item.complete(None)
			return

		if content is None:
			content = f"{url} content"
		if item.progress is not None:
			item.progress(1.0)
		item.complete(LoaderResult(content, url, item.data))

	def release_all(self) -> None:
		while self.pending:
			self.release(self.pending[0].url)

	def shutdown(self) -> None:
		self.shut_down = True


class Destroyable:
	def __init__(self, name: str = "") -> None:
		self.name = name
		self.destroy_calls = 0

	def destroy(self) -> None:
		self.destroy_calls += 1

	def __repr__(self) -> str:
		return f"<Destroyable {self.name!r}>"


class FakeImage:
	"""Looks enough like pyglet's ``ImageData`` for the image tasks."""

	def __init__(self, width: int, height: int, rgba: bytes) -> None:
		self.width = width
		self.height = height
		self.rgba = rgba
		self.deleted = False

	def get_data(self, fmt: str, pitch: int) -> bytes:
		assert fmt == "RGBA"
		assert pitch == -self.width * 4
		return self.rgba

	def get_region(self, x: int, y: int, width: int, height: int) -> t.Tuple[int, int, int, int]:
		return (x, y, width, height)

	def delete(self) -> None:
		self.deleted = True


def run_clock(
	clock: Clock,
	condition: t.Callable[[], bool],
	max_ticks: int = 200,
	delay: float = 0.0,
) -> None:
	"""
	Ticks ``clock`` until ``condition`` holds, sleeping ``delay``
	seconds between ticks to give worker threads a chance.
	"""
	for _ in range(max_ticks):
		if condition():
			return
		clock.tick()
		if delay:
			sleep(delay)
	if not condition():
		raise AssertionError("Clock ran out of ticks before condition was met")


@pytest.fixture
def clock() -> Clock:
	# Every time query advances time by a second, so nothing ever waits.
	counter = itertools.count()
	return Clock(time_function=lambda: float(next(counter)))


@pytest.fixture
def fetcher() -> FakeFetcher:
	return FakeFetcher()


@pytest.fixture
def manager(clock, fetcher) -> t.Iterator[AssetManager]:
	m = AssetManager(clock, fetcher=fetcher)
	register_default_tasks(m.registry)
	yield m
	m.destroy()
