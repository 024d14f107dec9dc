[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "henkit"
version = "0.1.0"
description = "Comment-preserving INI handling, file helpers, an x86-64 instruction length decoder, byte pattern scanning and plugin selection for homebrew plugin loaders"
requires-python = ">=3.10"
dependencies = []
keywords = ["ini", "pattern-scan", "x86-64", "length-disassembler", "plugins", "fnv-1a"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: Software Development :: Disassemblers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
henkit-loader = "henkit.loader:main"

[tool.hatch.build.targets.wheel]
packages = ["henkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
