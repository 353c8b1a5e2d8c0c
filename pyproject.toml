[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "eppsched"
version = "0.1.0"
description = "Request scheduling for LLM inference pools: filters, scorers, pickers and prefix-cache aware routing"
requires-python = ">=3.10"
dependencies = []
keywords = ["scheduling", "load-balancing", "llm", "inference", "lora", "prefix-cache", "xxhash"]
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
    "Topic :: System :: Distributed Computing",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["eppsched"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
