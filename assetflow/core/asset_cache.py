"""
The asset cache and the logic for tearing down whatever ends up in it.
"""

import typing as t

from loguru import logger


def _destroy_leaf(value: t.Any) -> None:
	if (destroy := getattr(value, "destroy", None)) is not None and callable(destroy):
		destroy()
	elif (delete := getattr(value, "delete", None)) is not None and callable(delete):
		# pyglet textures and friends
		delete()
	elif hasattr(value, "src"):
		# Image-like object without a teardown method, drop its source
		value.src = ""


def destroy_value(value: t.Any) -> None:
	"""
	Destroys a loaded value.
	Dicts and lists/tuples are walked recursively and every element is
	destroyed. Leaves are destroyed via their ``destroy`` method,
	falling back to ``delete``, falling back to clearing their ``src``.
	Anything else is left alone.
	"""
	if value is None:
		return

	if isinstance(value, dict):
		for v in value.values():
			destroy_value(v)
	elif isinstance(value, (list, tuple)):
		for v in value:
			destroy_value(v)
	else:
		_destroy_leaf(value)


class AssetCache:
	"""
	Remembers loaded assets by id.
	Values written into the cache belong to it: They are destroyed
	when overwritten, deleted, or when the cache is emptied.
	"""

	def __init__(self) -> None:
		self._cache: t.Optional[t.Dict[str, t.Any]] = {}

	def _table(self) -> t.Dict[str, t.Any]:
		if self._cache is None:
			raise RuntimeError("AssetCache was destroyed!")
		return self._cache

	def read(self, id_: str) -> t.Any:
		"""
		Returns the asset cached under ``id_``, or ``None`` if there is
		no such asset.
		"""
		table = self._table()
		if id_ not in table:
			logger.warning(f"AssetCache: no asset matching id {id_!r}")
			return None
		return table[id_]

	def write(self, id_: str, content: t.Any) -> None:
		"""
		Stores ``content`` under ``id_``. An asset already stored under
		that id is deleted, and thereby destroyed, first.
		"""
		table = self._table()
		if id_ in table:
			logger.warning(f"AssetCache: overwriting existing asset {id_!r}")
			self.delete(id_)
		table[id_] = content

	def delete(self, asset: t.Union[str, t.Dict[str, t.Any]]) -> None:
		"""
		Destroys and removes an asset, given either by its id or by a
		descriptor carrying an ``id``. Unknown ids are ignored.
		"""
		table = self._table()
		id_ = asset if isinstance(asset, str) else asset.get("id")
		if not id_ or id_ not in table:
			return

		destroy_value(table[id_])
		del table[id_]

	def empty(self) -> None:
		"""Deletes every cached asset."""
		for id_ in list(self._table()):
			self.delete(id_)

	def destroy(self) -> None:
		"""
		Empties the cache and releases it. The cache must not be used
		after this.
		"""
		if self._cache is None:
			return
		self.empty()
		self._cache = None

	def keys(self) -> t.List[str]:
		return list(self._table())

	def __contains__(self, id_: object) -> bool:
		return id_ in self._table()

	def __len__(self) -> int:
		return len(self._table())
