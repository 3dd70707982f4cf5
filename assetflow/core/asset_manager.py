"""
The asset manager ties the registry, the cache and the fetcher together
and is what load sessions get created through.
"""

import typing as t

from loguru import logger
from pyglet.clock import Clock, get_default

from assetflow.core.asset_cache import AssetCache
from assetflow.core.asset_load import (
	AssetLoad, LoadCompleteCallback, LoadProgressCallback, TaskDoneCallback
)
from assetflow.core.config import LoaderConfig
from assetflow.core.fetch import BaseFetcher, FetchProgressCallback, FileFetcher
from assetflow.core.image_tasks import ColorAlphaTask, TextureAtlasTask
from assetflow.core.task_registry import TaskRegistry
from assetflow.core.tasks import FunctionTask, ListTask, LoadTask


class AssetManager:
	def __init__(
		self,
		clock: t.Optional[Clock] = None,
		config: t.Optional[LoaderConfig] = None,
		fetcher: t.Optional[BaseFetcher] = None,
	) -> None:
		self._clock = get_default() if clock is None else clock
		self.config = LoaderConfig.get_default() if config is None else config

		self.registry = TaskRegistry()
		self.cache = AssetCache()
		self.fetcher = FileFetcher(
			self._clock,
			self.config.base_path,
			self.config.max_concurrent_loads,
			self.config.loader_threads,
		) if fetcher is None else fetcher

		self.loads: t.List[AssetLoad] = []
		"""Sessions that have been created and not yet finished or destroyed."""

	@property
	def clock(self) -> Clock:
		return self._clock

	def load(
		self,
		assets: t.Any,
		complete: t.Optional[LoadCompleteCallback] = None,
		*,
		progress: t.Optional[LoadProgressCallback] = None,
		task_done: t.Optional[TaskDoneCallback] = None,
		cache_all: t.Optional[bool] = None,
		parallel: t.Optional[bool] = None,
		type: t.Optional[str] = None,
		auto_start: bool = True,
	) -> AssetLoad:
		"""
		Loads ``assets``, which may be a single asset descriptor or a
		list or dict of them, and calls ``complete`` with the result
		once everything has been loaded. The result has the same shape
		as ``assets``.

		``cache_all`` and ``parallel`` default to the manager's config.
		``type`` is added to each descriptor that does not specify one.

		:raises TaskResolutionError: If an asset can not be mapped to
		a task.
		"""
		load = AssetLoad(self)
		self.loads.append(load)
		load.setup(
			assets,
			complete,
			progress,
			task_done,
			self.config.parallel if parallel is None else parallel,
			self.config.cache_all if cache_all is None else cache_all,
			type,
			auto_start,
		)
		return load

	def load_file(
		self,
		url: str,
		complete: LoadCompleteCallback,
		progress: t.Optional[FetchProgressCallback] = None,
		cache: bool = False,
		data: t.Any = None,
	) -> AssetLoad:
		"""
		Loads a single file. Shorthand for ``load({"src": url, ...})``.
		"""
		return self.load({
			"src": url,
			"progress": progress,
			"cache": cache,
			"data": data,
		}, complete)

	def _forget_load(self, load: AssetLoad) -> None:
		if load in self.loads:
			self.loads.remove(load)

	def destroy(self) -> None:
		"""
		Destroys all running load sessions, the cache and shuts down
		the fetcher.
		"""
		logger.info(f"Destroying asset manager with {len(self.loads)} running load(s)")
		for load in self.loads.copy():
			load.destroy()
		self.loads.clear()
		self.cache.destroy()
		self.fetcher.shutdown()


def register_default_tasks(registry: TaskRegistry) -> None:
	"""
	Registers the builtin tasks with their default priorities.
	"""
	registry.register(LoadTask, 0)
	registry.register(ListTask, 0)
	registry.register(FunctionTask, 10)
	registry.register(ColorAlphaTask, 20)
	registry.register(TextureAtlasTask, 30)


_manager: t.Optional[AssetManager] = None


def initialize(
	clock: t.Optional[Clock] = None,
	config: t.Optional[LoaderConfig] = None,
) -> AssetManager:
	"""
	Initializes the asset system.
	Creates the default asset manager and registers the builtin tasks
	on it. Calling this again replaces the previous manager, which is
	destroyed.
	"""
	global _manager

	if _manager is not None:
		_manager.destroy()

	_manager = AssetManager(clock, config)
	register_default_tasks(_manager.registry)
	logger.info("Asset system initialized")

	return _manager

# Redirect to the singleton so stuff can be used via `load()` and not
# `some_object.assets.load()`.

def get_manager() -> AssetManager:
	if _manager is None:
		raise RuntimeError("Asset system not initialized!")
	return _manager

def load(assets: t.Any, complete: t.Optional[LoadCompleteCallback] = None, **options) -> AssetLoad:
	if _manager is None:
		raise RuntimeError("Asset system not initialized!")
	return _manager.load(assets, complete, **options)

def load_file(
	url: str,
	complete: LoadCompleteCallback,
	progress: t.Optional[FetchProgressCallback] = None,
	cache: bool = False,
	data: t.Any = None,
) -> AssetLoad:
	if _manager is None:
		raise RuntimeError("Asset system not initialized!")
	return _manager.load_file(url, complete, progress, cache, data)
