[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rpcmiddleware"
version = "0.1.0"
description = "Interceptor middleware for RPC servers and clients: recovery, retry, request tags, validation and tracing."
requires-python = ">=3.10"
dependencies = []
keywords = ["rpc", "middleware", "interceptor", "retry", "tracing", "validation", "metadata"]
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
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rpcmiddleware"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
