[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "proxytweak"
version = "0.1.0"
description = "Local HTTP/HTTPS proxy that rewrites requests for an upstream worker or proxy peer"
requires-python = ">=3.10"
dependencies = []
keywords = ["proxy", "http", "https", "connect", "tls", "worker", "websocket"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
proxytweak = "proxytweak.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["proxytweak"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
