[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "taskpool"
version = "0.1.0"
description = "Thread-based worker pools: fixed, counting, elastic, result-returning and queued variants"
requires-python = ">=3.10"
dependencies = []
keywords = ["worker pool", "threads", "concurrency", "task queue", "timeout"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
taskpool-basic = "taskpool.basic:main"
taskpool-counting = "taskpool.counting:main"
taskpool-elastic = "taskpool.elastic:main"
taskpool-results = "taskpool.results:main"
taskpool-queued = "taskpool.queued:main"

[tool.hatch.build.targets.wheel]
packages = ["taskpool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
