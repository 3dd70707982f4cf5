#!/usr/bin/env python3

import argparse
import sys


def main():
	argparser = argparse.ArgumentParser(
		description = "Loads every asset described in a json manifest and reports the results."
	)
	argparser.add_argument(
		"manifest",
		help = (
			"Path to a json file containing an asset descriptor, a list or an object "
			"of them."
		),
	)
	argparser.add_argument(
		"--less-debug",
		"-l",
		action = "count",
		default = 0,
		help = (
			"Lowers the debug level. If this flag isn't specified, will log everything "
			"including load progress traces. If specified once, will stop logging traces. "
			"If specified more often than that, will only log at the configured log level."
		),
	)
	argparser.add_argument(
		"--sequential",
		"-s",
		action = "store_true",
		help = "Loads assets one after another instead of all at once.",
	)
	argparser.add_argument(
		"--base-path",
		"-b",
		default = None,
		help = (
			"Directory asset urls in the manifest are relative to. "
			"Defaults to the configured base path."
		),
	)

	result = argparser.parse_args()

	from assetflow.core.config import LoaderConfig
	from assetflow.main import ManifestRunner, setup_logging

	config = LoaderConfig.from_env()
	if result.base_path is not None:
		config.base_path = result.base_path
	if result.sequential:
		config.parallel = False

	setup_logging(2 - result.less_debug, config.log_level)

	runner = ManifestRunner(result.manifest, config)
	runner.run()
	sys.exit(1 if runner.failed else 0)


if __name__ == "__main__":
	main()
