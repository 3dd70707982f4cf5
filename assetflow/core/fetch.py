"""
The fetching end of the pipeline. A fetcher turns a url into raw,
decoded content and reports back through a callback; it knows nothing
about tasks, sessions or the cache.
"""

import abc
from concurrent.futures import Future, ThreadPoolExecutor
import heapq
import itertools
import json
import os
from pathlib import Path
import typing as t
from xml.etree.ElementTree import ElementTree, ParseError

from loguru import logger

if t.TYPE_CHECKING:
	from pyglet.clock import Clock
	from pyglet.image import ImageData


FetchCompleteCallback = t.Callable[[t.Optional["LoaderResult"]], t.Any]
FetchProgressCallback = t.Callable[[float], t.Any]
Decoder = t.Callable[[str], t.Any]


_BUILTIN_EXTENSION_MAP = {
	"txt": "text",
	"bin": "bytes",
	"xml": "xml",
	"json": "json",
	"png": "image",
	"jpg": "image",
	"jpeg": "image",
	"gif": "image",
	"bmp": "image",
}


class FetchError(OSError):
	pass


def _decode_bytes(path: str) -> bytes:
	with open(path, "rb") as f:
		return f.read()


def _decode_text(path: str) -> str:
	with open(path, "r", encoding="utf-8") as f:
		return f.read()


def _decode_json(path: str) -> t.Any:
	with open(path, "r", encoding="utf-8") as f:
		return json.load(f)


def _decode_xml(path: str) -> ElementTree:
	et = ElementTree()
	with open(path, "r", encoding="utf-8") as f:
		et.parse(f)
	return et


def _decode_image(path: str) -> "ImageData":
	# pyglet.image drags in GL on import, keep it out of headless use.
	from pyglet import image
	from pyglet.image.codecs import ImageDecodeException

	try:
		return image.load(path).get_image_data()
	except ImageDecodeException as e:
		raise FetchError(f"Could not decode image {path!r}: {e}") from e


_DECODERS: t.Dict[str, Decoder] = {
	"bytes": _decode_bytes,
	"text": _decode_text,
	"json": _decode_json,
	"xml": _decode_xml,
	"image": _decode_image,
}


class LoaderResult:
	"""
	What a fetcher hands back on success: The decoded content, the
	url it was requested by and whatever data the requester attached.
	"""

	__slots__ = ("content", "url", "data")

	def __init__(self, content: t.Any, url: str, data: t.Any = None) -> None:
		self.content = content
		self.url = url
		self.data = data

	def destroy(self) -> None:
		"""
		Drops all references held by this result. Does not destroy
		the content, whoever unwrapped it owns it now.
		"""
		self.content = None
		self.url = None
		self.data = None

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} url={self.url!r}>"


class LoaderItem:
	"""
	A single fetch, either queued or in flight.
	"""

	__slots__ = ("url", "path", "complete", "progress", "priority", "data", "done")

	def __init__(
		self,
		url: str,
		path: str,
		complete: FetchCompleteCallback,
		progress: t.Optional[FetchProgressCallback],
		priority: int,
		data: t.Any,
	) -> None:
		self.url = url
		self.path = path
		self.complete = complete
		self.progress = progress
		self.priority = priority
		self.data = data
		self.done = False


class BaseFetcher(abc.ABC):
	@abc.abstractmethod
	def fetch(
		self,
		url: str,
		complete: FetchCompleteCallback,
		progress: t.Optional[FetchProgressCallback] = None,
		priority: int = 0,
		data: t.Any = None,
	) -> LoaderItem:
		"""
		Starts fetching ``url``.
		``complete`` must be called exactly once, with a
		``LoaderResult`` on success or ``None`` on failure.
		``progress`` may be called any amount of times with a float
		between 0 and 1 before that.
		"""
		raise NotImplementedError()

	def shutdown(self) -> None:
		"""
		Releases whatever resources the fetcher holds. Queued fetches
		are dropped without completing.
		"""


class FileFetcher(BaseFetcher):
	"""
	Fetches files off the local disk.
	Completions are always delivered through the given pyglet clock,
	so they reach the caller on the thread ticking that clock, never
	synchronously from within ``fetch``.
	"""

	def __init__(
		self,
		clock: "Clock",
		base_path: t.Union[str, Path] = ".",
		max_concurrent_loads: int = 2,
		loader_threads: int = 0,
	) -> None:
		if max_concurrent_loads < 1:
			raise ValueError("max_concurrent_loads must be at least 1")

		self._clock = clock
		self._base_path = str(base_path)
		self.max_concurrent_loads = max_concurrent_loads

		self._decoders = _DECODERS.copy()
		self._extension_map = _BUILTIN_EXTENSION_MAP.copy()

		self._queue: t.List[t.Tuple[int, int, LoaderItem]] = []
		self._counter = itertools.count()
		self._active = 0

		self._executor: t.Optional[ThreadPoolExecutor] = None
		if loader_threads > 0:
			self._executor = ThreadPoolExecutor(loader_threads, "AssetFetcher")

	def register_decoder(self, extension: str, decoder: Decoder) -> None:
		"""
		Makes files with the given extension (without the dot) be
		decoded by ``decoder``, which receives an absolute path and
		should raise ``FetchError`` for anything that went wrong while
		reading. Any other exception is logged with its traceback and
		fails the fetch all the same.
		"""
		ext = extension.lstrip(".").lower()
		self._decoders[ext] = decoder
		self._extension_map[ext] = ext

	def resolve_path(self, url: str) -> str:
		if os.path.isabs(url):
			return url
		return os.path.join(self._base_path, url)

	def fetch(
		self,
		url: str,
		complete: FetchCompleteCallback,
		progress: t.Optional[FetchProgressCallback] = None,
		priority: int = 0,
		data: t.Any = None,
	) -> LoaderItem:
		item = LoaderItem(url, self.resolve_path(url), complete, progress, priority, data)
		heapq.heappush(self._queue, (-priority, next(self._counter), item))
		self._pump()
		return item

	def pending_count(self) -> int:
		"""Fetches that have not been started yet."""
		return len(self._queue)

	def active_count(self) -> int:
		return self._active

	def _pump(self) -> None:
		while self._queue and self._active < self.max_concurrent_loads:
			_, _, item = heapq.heappop(self._queue)
			self._active += 1
			self._begin(item)

	def _begin(self, item: LoaderItem) -> None:
		if item.progress is not None:
			item.progress(0.0)

		if self._executor is None:
			self._clock.schedule_once(self._read_scheduled, 0.0, item)
			return

		future = self._executor.submit(self._read, item)
		future.add_done_callback(
			lambda future, item=item:
				self._clock.schedule_once(self._on_threaded_read_complete, 0.0, item, future)
		)

	def _read(self, item: LoaderItem) -> t.Any:
		ext = os.path.splitext(item.path)[1][1:].lower()
		decoder = self._decoders[self._extension_map.get(ext, "bytes")]
		try:
			return decoder(item.path)
		except (OSError, ValueError, ParseError) as e:
			if isinstance(e, FetchError):
				raise
			raise FetchError(f"Failed reading {item.path!r}: {e}") from e

	def _read_scheduled(self, _, item: LoaderItem) -> None:
		try:
			content = self._read(item)
		except FetchError as e:
			logger.error(f"Fetch of {item.url!r} failed: {e}")
			self._finish(item, None)
			return
		except Exception:
			logger.exception(f"Decoder crashed while fetching {item.url!r}")
			self._finish(item, None)
			return

		self._finish(item, LoaderResult(content, item.url, item.data))

	def _on_threaded_read_complete(self, _, item: LoaderItem, future: Future) -> None:
		if (exc := future.exception()) is not None:
			if isinstance(exc, FetchError):
				logger.error(f"Threaded fetch of {item.url!r} failed: {exc}")
			else:
				logger.opt(exception=exc).error(f"Decoder crashed while fetching {item.url!r}")
			self._finish(item, None)
			return

		self._finish(item, LoaderResult(future.result(), item.url, item.data))

	def _finish(self, item: LoaderItem, result: t.Optional[LoaderResult]) -> None:
		self._active -= 1
		item.done = True
		if result is not None and item.progress is not None:
			item.progress(1.0)

		complete = item.complete
		item.complete = item.progress = None
		try:
			complete(result)
		finally:
			self._pump()

	def shutdown(self) -> None:
		self._queue.clear()
		if self._executor is not None:
			self._executor.shutdown(wait=False)
			self._executor = None
