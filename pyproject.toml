[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cqcore"
version = "0.1.0"
description = "Core library for cloud asset provider plugins: provider registry, plugin tracking, resource selection, schema sync decisions, fetch summaries, purge queries and update checks."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "cloud",
    "assets",
    "inventory",
    "providers",
    "plugins",
    "postgresql",
    "schema",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cqcore"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
