#!/usr/bin/env python3

from setuptools import find_packages, setup


if __name__ == "__main__":
	setup(
		name = "assetflow",
		version = "0.1.0",
		description = "Callback driven asset loading pipeline on top of the pyglet clock",
		packages = find_packages(include=["assetflow", "assetflow.*"]),
		py_modules = ["run"],
		python_requires = ">=3.8",
		install_requires = [
			"loguru",
			"pyglet",
			"python-dotenv",
			"schema",
		],
		extras_require = {
			"test": ["pytest"],
		},
		entry_points = {
			"console_scripts": ["assetflow=run:main"],
		},
	)
