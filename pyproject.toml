[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "consolestate"
version = "0.1.0"
description = "State model for an async runtime console: tasks, resources, async ops, poll histograms and terminal setup."
requires-python = ">=3.10"
dependencies = []
keywords = ["async", "console", "debugger", "tasks", "instrumentation", "histogram"]
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
    "Topic :: Software Development :: Debuggers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["consolestate"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
