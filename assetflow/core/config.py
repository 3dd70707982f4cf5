"""
Loader configuration.
"""

import os
import typing as t

from dotenv import load_dotenv
from schema import And, Schema, Use


def _convert_bool_env_var(v: t.Optional[str]) -> bool:
	if v == "0":
		return False
	return bool(v)


class LoaderConfig:
	"""
	Stores configuration for an `AssetManager` and its fetcher.

	`base_path`: Directory relative asset urls are resolved against.
	`max_concurrent_loads`: How many fetches may be in flight at once.
		Further fetches are queued by priority.
	`loader_threads`: Amount of worker threads the `FileFetcher` reads
		files on. `0` reads everything on the clock's thread.
	`parallel`: Default concurrency policy for load sessions.
	`cache_all`: Whether load sessions cache every item by default.
	`log_level`: Minimum level of the stderr log sink when not
		running in debug mode.
	"""

	SCHEMA = Schema(
		{
			"base_path": str,
			"max_concurrent_loads": And(int, lambda v: v >= 1),
			"loader_threads": And(int, lambda v: v >= 0),
			"parallel": bool,
			"cache_all": bool,
			"log_level": And(str, Use(str.upper)),
		},
		ignore_extra_keys = True,
	)

	ENV_CONVERTERS: t.Dict[str, t.Callable[[str], t.Any]] = {
		"base_path": str,
		"max_concurrent_loads": int,
		"loader_threads": int,
		"parallel": _convert_bool_env_var,
		"cache_all": _convert_bool_env_var,
		"log_level": str,
	}

	def __init__(
		self,
		base_path: str = ".",
		max_concurrent_loads: int = 2,
		loader_threads: int = 0,
		parallel: bool = True,
		cache_all: bool = False,
		log_level: str = "INFO",
	) -> None:
		self.base_path = base_path
		self.max_concurrent_loads = max_concurrent_loads
		self.loader_threads = loader_threads
		self.parallel = parallel
		self.cache_all = cache_all
		self.log_level = log_level

	@classmethod
	def from_dict(cls, data: t.Dict[str, t.Any]) -> "LoaderConfig":
		"""
		Creates a config from a dict, probably read out of a json file.
		Missing keys are taken from the default config.

		:raises SchemaError: When the schema library fails validating
		the dict.
		"""
		merged = cls.get_default().to_dict()
		merged.update(data)
		return cls(**cls.SCHEMA.validate(merged))

	@classmethod
	def from_env(cls, prefix: str = "ASSETFLOW_") -> "LoaderConfig":
		"""
		Creates a config from environment variables named after the
		config's fields, uppercased and prefixed with `prefix`.
		A `.env` file is loaded beforehand, if one can be found.
		"""
		load_dotenv()

		data = {}
		for name, converter in cls.ENV_CONVERTERS.items():
			raw = os.getenv(prefix + name.upper())
			if raw is None:
				continue
			try:
				data[name] = converter(raw)
			except ValueError as e:
				raise ValueError(f"Bad value for {prefix + name.upper()}: {raw!r}") from e

		return cls.from_dict(data)

	def to_dict(self) -> t.Dict[str, t.Any]:
		return {
			"base_path": self.base_path,
			"max_concurrent_loads": self.max_concurrent_loads,
			"loader_threads": self.loader_threads,
			"parallel": self.parallel,
			"cache_all": self.cache_all,
			"log_level": self.log_level,
		}

	@classmethod
	def get_default(cls) -> "LoaderConfig":
		return cls()
