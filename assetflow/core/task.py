"""
The task abstraction. A task is created from exactly one asset
descriptor and knows how to turn it into a loaded result.
"""

import abc
import enum
import posixpath
import typing as t

from loguru import logger

if t.TYPE_CHECKING:
	from assetflow.core.asset_load import AssetLoad
	from assetflow.core.asset_manager import AssetManager
	from assetflow.core.fetch import FetchCompleteCallback, FetchProgressCallback, LoaderItem


AssetDescriptor = t.Dict[str, t.Any]
TaskCallback = t.Callable[[t.Any], t.Any]
TaskCompleteCallback = t.Callable[[t.Any, AssetDescriptor, t.List[t.Any]], t.Any]


class TaskStatus(enum.IntEnum):
	WAITING = 0
	RUNNING = 1
	FINISHED = 2


def derive_fallback_id(source: t.Any) -> t.Optional[str]:
	"""
	Derives an id from a source path by cutting off its directories
	and file extension, so ``"img/hero.png"`` becomes ``"hero"``.
	Returns ``None`` if nothing usable is left.
	"""
	if not isinstance(source, str) or not source:
		return None

	name = posixpath.basename(source.replace("\\", "/"))
	name = posixpath.splitext(name)[0] if "." in name[1:] else name
	return name or None


class Task(abc.ABC):
	"""
	Base class for everything the asset manager can load.

	Subclasses must implement ``test``, a classmethod deciding whether
	an asset descriptor is theirs, and ``start``.
	"""

	def __init__(
		self,
		manager: "AssetManager",
		asset: AssetDescriptor,
		fallback_id: t.Optional[str] = None,
	) -> None:
		self._manager = manager

		self.status = TaskStatus.WAITING

		self.complete: t.Optional[TaskCompleteCallback] = asset.get("complete")
		"""
		Called with the result, the original descriptor and a list
		that further descriptors may be appended to for them to be
		loaded as part of the same session.
		"""

		self.cache = bool(asset.get("cache", False))
		self.id: t.Optional[str] = asset.get("id") or None
		self.type: t.Optional[str] = asset.get("type")

		self.original = asset
		"""The descriptor this task was created from."""

		if self.cache and not self.id:
			derived = derive_fallback_id(fallback_id)
			if derived is not None:
				asset["id"] = self.id = derived
			else:
				logger.error(f"Caching an asset requires an id, none set: {asset!r}")
				self.cache = False

	@classmethod
	@abc.abstractmethod
	def test(cls, asset: AssetDescriptor) -> bool:
		"""
		Whether this task is able to handle the given asset
		descriptor.
		"""
		raise NotImplementedError()

	@abc.abstractmethod
	def start(self, callback: TaskCallback) -> None:
		"""
		Starts the task. ``callback`` must be called exactly once with
		the result, whether the underlying operation succeeded or not.
		"""
		raise NotImplementedError()

	def load(
		self,
		source: t.Any,
		complete: t.Optional[t.Callable[[t.Any], t.Any]] = None,
		**options: t.Any,
	) -> "AssetLoad":
		"""
		Runs a nested load session through the owning manager.
		"""
		return self._manager.load(source, complete, **options)

	def simple_load(
		self,
		url: str,
		complete: "FetchCompleteCallback",
		progress: t.Optional["FetchProgressCallback"] = None,
		data: t.Any = None,
	) -> "LoaderItem":
		"""
		Fetches a single url straight through the manager's fetcher.
		"""
		return self._manager.fetcher.fetch(url, complete, progress, data=data)

	def destroy(self) -> None:
		"""
		Drops everything this task references. Safe to call multiple
		times and on tasks that never started.
		"""
		self.status = TaskStatus.FINISHED
		self.id = None
		self.type = None
		self.complete = None
		self.original = None

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} id={self.id!r} status={self.status.name}>"
