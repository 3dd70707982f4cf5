"""
Load sessions. A session takes one asset descriptor, which may be a
single asset, a list or a map of them, resolves every item into a task,
runs those and hands back results in the shape they were requested in.
"""

import enum
import functools
import itertools
import typing as t

from loguru import logger

from assetflow.core.asset_cache import destroy_value
from assetflow.core.task import AssetDescriptor, Task, TaskStatus
from assetflow.core.task_registry import TaskResolutionError

if t.TYPE_CHECKING:
	from assetflow.core.asset_manager import AssetManager


LoadCompleteCallback = t.Callable[[t.Any], t.Any]
LoadProgressCallback = t.Callable[[float], t.Any]
TaskDoneCallback = t.Callable[[t.Any, AssetDescriptor, t.List[t.Any]], t.Any]


class LoadMode(enum.IntEnum):
	SINGLE = 0
	MAP = 1
	LIST = 2


class LoadProgress:
	def __init__(self, requested: int, loaded: int, last_loaded: str) -> None:
		self.requested = requested
		"""
		The amount of tasks requested so far. May grow while the load
		runs, as finished tasks are able to request more.
		"""

		self.loaded = loaded
		"""The amount of tasks that have completed."""

		self.last_loaded = last_loaded
		"""
		Name of the task most recently completed. Nothing more than a
		fancy string for loading screen decoration.
		"""


class _AdditionalAsset:
	"""Position marker for tasks whose result is not part of the load's result."""

	def __repr__(self) -> str:
		return "<additional>"


_ADDITIONAL = _AdditionalAsset()


def normalize_asset(asset: t.Any) -> t.Any:
	"""
	Expands the shorthand forms of asset descriptors: A string becomes
	a file load, a callable becomes an async function load and a list
	becomes a nested list load. Dicts are copied so the caller's
	descriptor is never modified. Anything else is returned untouched.
	"""
	if isinstance(asset, str):
		return {"src": asset}
	elif isinstance(asset, (list, tuple)):
		return {"assets": asset}
	elif callable(asset):
		return {"async": asset}
	elif isinstance(asset, dict):
		return dict(asset)
	return asset


class AssetLoad:
	"""
	A single running load session. Created by the ``AssetManager``,
	not meant to be created directly.

	Sessions are single-use: Once all of their tasks completed they
	call their completion callback exactly once and destroy
	themselves.
	"""

	_ids = itertools.count(1)

	def __init__(self, manager: "AssetManager") -> None:
		self.manager: t.Optional["AssetManager"] = manager
		self.id = next(AssetLoad._ids)

		self.mode = LoadMode.MAP
		self.parallel = True
		"""Whether to start all tasks at once or one after another."""
		self.cache_all = False
		self.type: t.Optional[str] = None
		"""Default ``type`` attached to every asset that does not have one."""

		self.tasks: t.List[Task] = []
		"""Tasks that have not completed yet."""

		self.results: t.Any = None
		self.running = False
		self.finished = False
		self.destroyed = False

		self.total = 0
		self.num_loaded = 0
		self._last_loaded = ""

		self._positions: t.Dict[Task, t.Hashable] = {}
		"""Maps each pending task to the index or key its result goes to."""

		self._cached_positions: t.Set[t.Hashable] = set()
		"""Positions whose result is owned by the asset cache."""

		self._complete: t.Optional[LoadCompleteCallback] = None
		self._progress: t.Optional[LoadProgressCallback] = None
		self._task_done: t.Optional[TaskDoneCallback] = None

		# Trampoline state, keeps synchronously completing tasks from recursing
		self._advancing = False
		self._advance_pending = False

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} #{self.id} mode={self.mode.name}>"

	def setup(
		self,
		assets: t.Any,
		complete: t.Optional[LoadCompleteCallback] = None,
		progress: t.Optional[LoadProgressCallback] = None,
		task_done: t.Optional[TaskDoneCallback] = None,
		parallel: bool = True,
		cache_all: bool = False,
		type_: t.Optional[str] = None,
		auto_start: bool = True,
	) -> None:
		"""
		Resolves ``assets`` into tasks and possibly starts running
		them.

		:raises TaskResolutionError: If any asset can not be resolved
		into a task. The session is destroyed in that case and
		``complete`` will never be called.
		"""
		self.parallel = parallel
		self.cache_all = cache_all
		self.type = type_
		self._complete = complete
		self._progress = progress
		self._task_done = task_done

		try:
			self.mode, self.results = self._add_root_tasks(assets)
		except TaskResolutionError:
			self.destroy()
			raise

		if auto_start:
			self.start()

	def _add_root_tasks(self, assets: t.Any) -> t.Tuple[LoadMode, t.Any]:
		single = None if isinstance(assets, (list, tuple)) else normalize_asset(assets)
		if isinstance(single, dict):
			if "type" not in single and self.type:
				single["type"] = self.type
			if self.manager.registry.get_task_class(single) is not None:
				self._add_task(single, 0)
				return LoadMode.SINGLE, None

		if isinstance(assets, (list, tuple)):
			for i, asset in enumerate(assets):
				self._add_task(asset, i)
			return LoadMode.LIST, [None] * len(assets)

		if isinstance(assets, dict):
			for key, asset in assets.items():
				self._add_task(asset, key)
			return LoadMode.MAP, dict.fromkeys(assets)

		raise TaskResolutionError(f"Unable to find a task definition for asset {assets!r}")

	def _add_task(self, asset: t.Any, position: t.Hashable) -> Task:
		asset = normalize_asset(asset)
		if not isinstance(asset, dict):
			raise TaskResolutionError(f"Unable to find a task definition for asset {asset!r}")

		if "type" not in asset and self.type:
			asset["type"] = self.type
		if "cache" not in asset and self.cache_all:
			asset["cache"] = True
		# Map keys double as ids so mapped results can be cached under them
		if isinstance(position, str) and not asset.get("id"):
			asset["id"] = position

		task = self.manager.registry.resolve(asset, self.manager)
		self.tasks.append(task)
		self._positions[task] = position
		self.total += 1
		return task

	def start(self) -> None:
		"""
		Starts running the session's tasks.
		Has no effect if the session is running or done already.
		"""
		if self.running or self.finished or self.destroyed:
			return

		self.running = True
		logger.trace(f"{self!r} starting {self.total} task(s), parallel={self.parallel}")
		self._report_progress(0.0)

		if not self.tasks:
			self._finish()
			return

		self._next_task()

	def _next_task(self) -> None:
		if self._advancing:
			self._advance_pending = True
			return

		self._advancing = True
		try:
			while self.running:
				self._advance_pending = False
				for task in list(self.tasks):
					if task.status is not TaskStatus.WAITING:
						continue

					task.status = TaskStatus.RUNNING
					try:
						task.start(functools.partial(self._on_task_done, task))
					except TaskResolutionError:
						# Nested loads resolve their assets on start
						self.destroy()
						raise
					if not self.parallel or not self.running:
						break

				if not self._advance_pending:
					break
		finally:
			self._advancing = False

	def _on_task_done(self, task: Task, result: t.Any = None) -> None:
		if not self.running:
			if self.destroyed and not self.finished:
				logger.trace(f"{self!r} was destroyed, discarding completion of {task!r}")
				destroy_value(result)
			else:
				logger.error(f"{self!r} received completion of {task!r} after finishing")
			return

		if task not in self._positions:
			logger.error(f"{task!r} completed more than once in {self!r}")
			return

		position = self._positions.pop(task)
		self.tasks.remove(task)

		if position is not _ADDITIONAL:
			if self.mode is LoadMode.SINGLE:
				self.results = result
			else:
				self.results[position] = result

		if task.cache and result is not None:
			self.manager.cache.write(task.id, result)
			if position is not _ADDITIONAL:
				self._cached_positions.add(position)

		# Callbacks may append further assets to load as part of this session
		additional: t.List[t.Any] = []
		original = task.original
		if task.complete is not None:
			task.complete(result, original, additional)
		if self._task_done is not None:
			self._task_done(result, original, additional)

		self._last_loaded = str(task.id or original.get("src") or task.__class__.__name__)
		task.destroy()

		if not self.running:
			# A callback destroyed the session
			return

		try:
			for asset in additional:
				self._add_task(asset, _ADDITIONAL)
		except TaskResolutionError:
			self.destroy()
			raise

		self.num_loaded += 1
		self._report_progress(self.num_loaded / self.total)

		if self.tasks:
			self._next_task()
		else:
			self._finish()

	def _report_progress(self, fraction: float) -> None:
		if self._progress is not None:
			self._progress(fraction)

	def _finish(self) -> None:
		self.running = False
		self.finished = True
		results = self.results
		complete = self._complete
		logger.trace(f"{self!r} finished, {self.num_loaded} task(s) loaded")

		try:
			if complete is not None:
				complete(results)
		finally:
			self.destroy()

	def get_progress(self) -> LoadProgress:
		return LoadProgress(self.total, self.num_loaded, self._last_loaded)

	def is_done(self) -> bool:
		return self.finished

	def _destroy_partial_results(self) -> None:
		if self.results is None and self.mode is not LoadMode.SINGLE:
			return

		if self.mode is LoadMode.SINGLE:
			if 0 not in self._cached_positions:
				destroy_value(self.results)
			return

		positions = range(len(self.results)) if self.mode is LoadMode.LIST else self.results.keys()
		for position in positions:
			if position not in self._cached_positions:
				destroy_value(self.results[position])

	def destroy(self) -> None:
		"""
		Destroys the session. If it is still running, its remaining
		tasks are destroyed as well as all results so far that are not
		owned by the asset cache; late completions are ignored.
		In-flight fetches are not cancelled.
		"""
		if self.destroyed:
			return

		premature = self.running
		self.running = False
		self.destroyed = True

		for task in self.tasks:
			task.destroy()
		self.tasks.clear()
		self._positions.clear()

		if premature:
			logger.trace(f"{self!r} destroyed while running")
			self._destroy_partial_results()

		self.results = None
		self._complete = None
		self._progress = None
		self._task_done = None

		if self.manager is not None:
			self.manager._forget_load(self)
			self.manager = None
