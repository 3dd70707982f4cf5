"""
Builtin tasks that are not tied to any kind of content: plain file
loads, nested collections and arbitrary async functions.
"""

import typing as t

from assetflow.core.task import AssetDescriptor, Task, TaskCallback

if t.TYPE_CHECKING:
	from assetflow.core.asset_manager import AssetManager
	from assetflow.core.fetch import LoaderResult


class LoadTask(Task):
	"""
	Loads a single file through the manager's fetcher.

	Recognized descriptor keys beyond the common ones:
	- ``src``: The url to load. Required.
	- ``data``: Anything, attached to the fetch.
	- ``progress``: Called with the fetch progress from 0 to 1.
	- ``advanced``: If set, the task's result is the fetcher's
	  ``LoaderResult`` instead of its content.
	"""

	def __init__(self, manager: "AssetManager", asset: AssetDescriptor) -> None:
		super().__init__(manager, asset, asset["src"])

		self.src: str = asset["src"]
		self.progress = asset.get("progress")
		self.data = asset.get("data")
		self.advanced = bool(asset.get("advanced", False))

	@classmethod
	def test(cls, asset: AssetDescriptor) -> bool:
		return bool(asset.get("src"))

	def start(self, callback: TaskCallback) -> None:
		advanced = self.advanced

		def on_fetched(result: t.Optional["LoaderResult"]) -> None:
			content = result
			if result is not None and not advanced:
				content = result.content
				result.destroy()
			callback(content)

		self.simple_load(self.src, on_fetched, self.progress, self.data)

	def destroy(self) -> None:
		super().destroy()
		self.data = None
		self.progress = None


class ListTask(Task):
	"""
	Loads a collection of further descriptors through a nested load
	session. The result has the shape of ``assets``.

	Recognized descriptor keys beyond the common ones:
	- ``assets``: A list, tuple or dict of descriptors. Required.
	- ``cache_all``: Whether to cache every item of the collection.
	- ``progress``: Called with the nested session's progress.
	"""

	def __init__(self, manager: "AssetManager", asset: AssetDescriptor) -> None:
		super().__init__(manager, asset)

		self.assets = asset["assets"]
		self.cache_all = bool(asset.get("cache_all", False))
		self.progress = asset.get("progress")

	@classmethod
	def test(cls, asset: AssetDescriptor) -> bool:
		return isinstance(asset.get("assets"), (list, tuple, dict))

	def start(self, callback: TaskCallback) -> None:
		self.load(self.assets, callback, progress=self.progress, cache_all=self.cache_all)

	def destroy(self) -> None:
		super().destroy()
		self.assets = None
		self.progress = None


class FunctionTask(Task):
	"""
	Hands its completion callback to an arbitrary function, found under
	the descriptor's ``async`` key. Whatever that function calls the
	callback with is the task's result.
	"""

	def __init__(self, manager: "AssetManager", asset: AssetDescriptor) -> None:
		super().__init__(manager, asset)

		self.async_: t.Optional[t.Callable[[TaskCallback], t.Any]] = asset["async"]

	@classmethod
	def test(cls, asset: AssetDescriptor) -> bool:
		return callable(asset.get("async"))

	def start(self, callback: TaskCallback) -> None:
		self.async_(callback)

	def destroy(self) -> None:
		super().destroy()
		self.async_ = None
