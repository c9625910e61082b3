[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "middlekit"
version = "0.1.0"
description = "WSGI middleware and helpers: process monitor, PASETO authentication, Swagger UI, WebSocket handshake helpers, a socket event hub and HTTP trace attributes"
requires-python = ">=3.10"
keywords = [
    "wsgi",
    "middleware",
    "monitor",
    "paseto",
    "swagger",
    "openapi",
    "websocket",
    "opentelemetry",
]
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
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
]
dependencies = [
    "psutil",
    "pynacl",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["middlekit"]

[tool.hatch.build.targets.sdist]
include = [
    "middlekit",
    "tests",
]

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
ignore_missing_imports = true
