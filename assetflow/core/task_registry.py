"""
Maps asset descriptors to the tasks that load them.
"""

import typing as t

from loguru import logger

from assetflow.core.task import AssetDescriptor, Task

if t.TYPE_CHECKING:
	from assetflow.core.asset_manager import AssetManager


TaskT = t.TypeVar("TaskT", bound=Task)
TaskPredicate = t.Callable[[AssetDescriptor], bool]


class TaskResolutionError(LookupError):
	pass


class TaskDefinition:
	__slots__ = ("task_class", "test", "priority")

	def __init__(self, task_class: t.Type[Task], test: TaskPredicate, priority: int) -> None:
		self.task_class = task_class
		self.test = test
		self.priority = priority

	def __repr__(self) -> str:
		return f"<{self.__class__.__name__} {self.task_class.__name__} priority={self.priority}>"


class TaskRegistry:
	"""
	Holds all known task definitions, sorted so the one with the
	highest priority is tried first. Definitions of equal priority are
	tried in the order they were registered in.
	"""

	def __init__(self) -> None:
		self._definitions: t.List[TaskDefinition] = []

	def register(
		self,
		task_class: t.Type[Task],
		priority: int = 0,
		test: t.Optional[TaskPredicate] = None,
	) -> TaskDefinition:
		"""
		Registers a new kind of task.
		``test`` decides whether an asset descriptor can be loaded by
		the task and defaults to the task class's ``test`` method.
		More specific tasks should be registered with a higher
		priority than general ones, so they are tested first.
		"""
		if not isinstance(task_class, type) or not issubclass(task_class, Task):
			raise TypeError(f"Registered tasks must extend Task, got {task_class!r}")

		definition = TaskDefinition(
			task_class, task_class.test if test is None else test, priority
		)
		self._definitions.append(definition)
		# Stable, so earlier registrations win ties
		self._definitions.sort(key=lambda d: d.priority, reverse=True)
		logger.debug(f"Registered task {task_class.__name__} with priority {priority}")
		return definition

	def unregister(self, task_class: t.Type[Task]) -> None:
		"""
		Removes all definitions of the given task class.
		"""
		self._definitions = [d for d in self._definitions if d.task_class is not task_class]

	def get_task_class(self, asset: t.Any) -> t.Optional[t.Type[Task]]:
		"""
		Returns the task class responsible for the given asset
		descriptor, or ``None`` if no registered task is compatible.
		"""
		if not isinstance(asset, dict):
			return None

		for definition in self._definitions:
			if definition.test(asset):
				return definition.task_class
		return None

	def resolve(self, asset: AssetDescriptor, manager: "AssetManager") -> Task:
		"""
		Creates the task responsible for loading ``asset``.

		:raises TaskResolutionError: If no registered task is able to
		load the asset.
		"""
		task_class = self.get_task_class(asset)
		if task_class is None:
			raise TaskResolutionError(f"Unable to find a task definition for asset {asset!r}")
		return task_class(manager, asset)

	def __iter__(self) -> t.Iterator[TaskDefinition]:
		return iter(self._definitions.copy())

	def __len__(self) -> int:
		return len(self._definitions)
