[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oplpctools"
version = "3.1.0"
description = "Manage Open PS2 Loader game libraries: ul.cfg storage, virtual memory cards and update checks"
requires-python = ">=3.10"
dependencies = []
keywords = ["ps2", "opl", "open-ps2-loader", "ul.cfg", "vmc", "memory-card"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["oplpctools"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
