[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "keeperlib"
version = "0.1.0"
description = "Building blocks for an upkeep automation oracle: keys, observations, report encoding, keyed shuffling, caching and worker pools."
requires-python = ">=3.10"
keywords = ["upkeep", "oracle", "automation", "abi", "worker-pool", "cache", "shuffle"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pycryptodome",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["keeperlib"]

[tool.pytest.ini_options]
addopts = "-ra"
