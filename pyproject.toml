[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "prismkt"
version = "0.1.0"
description = "Key-transparency building blocks: encodings, epoch storage backends, metrics and a verifying light client."
requires-python = ">=3.10"
keywords = ["key-transparency", "crypto", "light-client", "merkle", "storage"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Database",
    "Framework :: AsyncIO",
]
dependencies = [
    "redis",
    "lmdb",
    "msgpack",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["prismkt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
