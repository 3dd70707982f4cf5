"""
Logging setup and the manifest runner driven by `run.py`.
"""

import os
import sys
from time import perf_counter, sleep
import typing as t

from loguru import logger
import pyglet

from assetflow import __version__
from assetflow.core import asset_manager
from assetflow.core.config import LoaderConfig
from assetflow.core.task_registry import TaskResolutionError

if t.TYPE_CHECKING:
	from loguru import Record
	from assetflow.core.asset_load import AssetLoad


def setup_logging(debug_level: int, log_level: str = "WARNING") -> None:
	"""
	Replaces loguru's default sink.
	With a `debug_level` above 0, logs colored messages to stderr,
	prefixed by the time elapsed since startup. A `debug_level` of 2
	or more lets trace messages through as well.
	Otherwise, logs plain messages of at least `log_level`.
	"""
	logger.remove()

	if not sys.stderr:
		return

	if debug_level <= 0:
		logger.add(sys.stderr, level=log_level, format="{level:<8} | {message}", colorize=False)
		return

	def elapsed_patcher(record: "Record") -> None:
		elapsed = record["elapsed"]
		days = elapsed.days % 11 # some sanity
		secs = elapsed.seconds + days * 86400
		millisecs = elapsed.microseconds // 1000
		record["extra"]["elapsed_secs_total"] = secs
		record["extra"]["elapsed_millisecs_total"] = millisecs

	logger.configure(patcher=elapsed_patcher)

	_stderr_fmt = (
		"<green>{extra[elapsed_secs_total]:0>6}.{extra[elapsed_millisecs_total]:0>3}</green> | "
		"<level>{level:<8}</level> | "
		"<cyan>{name}</cyan>:<cyan>{function}</cyan>@<cyan>{line}</cyan> - "
		"<level>{message}</level>"
	)
	logger.add(sys.stderr, level="TRACE" if debug_level > 1 else "DEBUG", format=_stderr_fmt)


def describe_value(value: t.Any) -> str:
	"""
	Short human-readable description of a loaded value for the load
	summary.
	"""
	if value is None:
		return "failed"
	if isinstance(value, (dict, list, tuple)):
		return f"{type(value).__name__} of {len(value)}"
	if isinstance(value, (str, bytes)):
		return f"{type(value).__name__}, {len(value)} long"
	if hasattr(value, "width") and hasattr(value, "height"):
		return f"{type(value).__name__} {value.width}x{value.height}"
	return type(value).__name__


class ManifestRunner:
	"""
	Loads a json manifest of asset descriptors and then every asset in
	it, driving a pyglet clock by hand until everything is done.
	"""

	def __init__(
		self,
		manifest_path: str,
		config: LoaderConfig,
		clock: t.Optional[pyglet.clock.Clock] = None,
	) -> None:
		self.manifest_path = os.path.abspath(manifest_path)
		self.config = config
		self.clock = pyglet.clock.Clock() if clock is None else clock
		self.assets = asset_manager.initialize(self.clock, config)

		self.result: t.Any = None
		self.failed = False
		self._done = False
		self._load: t.Optional["AssetLoad"] = None

	def run(self) -> t.Any:
		"""
		Runs until the manifest and all of its assets are loaded and
		returns the result. Sets `failed` if the manifest could not be
		loaded or any of its assets failed.
		"""
		logger.info(
			f"assetflow v{__version__}, pyglet v{pyglet.version}, loading {self.manifest_path}"
		)
		start = perf_counter()

		self.assets.load_file(self.manifest_path, self._on_manifest_loaded)
		while not self._done:
			self.clock.call_scheduled_functions(self.clock.update_time())
			sleep(0.005)

		logger.info(f"Loading finished in {perf_counter() - start:.3f}s")
		self.assets.destroy()
		return self.result

	def _on_manifest_loaded(self, manifest: t.Any) -> None:
		if manifest is None:
			logger.error(f"Could not load manifest {self.manifest_path}")
			self.failed = True
			self._done = True
			return

		try:
			self._load = self.assets.load(
				manifest,
				self._on_assets_loaded,
				progress = self._on_progress,
			)
		except TaskResolutionError as e:
			logger.error(f"Bad manifest {self.manifest_path}: {e}")
			self.failed = True
			self._done = True

	def _on_progress(self, fraction: float) -> None:
		if self._load is None:
			return
		progress = self._load.get_progress()
		logger.debug(
			f"{fraction:>6.1%} ({progress.loaded}/{progress.requested}) {progress.last_loaded}"
		)

	def _on_assets_loaded(self, result: t.Any) -> None:
		self.result = result
		self._done = True

		if isinstance(result, dict):
			items = list(result.items())
		elif isinstance(result, list):
			items = list(enumerate(result))
		else:
			items = [("asset", result)]

		for key, value in items:
			if value is None:
				self.failed = True
				logger.warning(f"{key}: {describe_value(value)}")
			else:
				logger.info(f"{key}: {describe_value(value)}")
