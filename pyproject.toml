[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "roughenough"
version = "2.0.0"
description = "Networking, configuration and metrics building blocks for a Roughtime time server"
requires-python = ">=3.10"
dependencies = []
keywords = ["roughtime", "time-sync", "udp", "tcp", "metrics", "server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Time Synchronization",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
roughenough-metrics-watcher = "roughenough.watcher:main"

[tool.hatch.build.targets.wheel]
packages = ["roughenough"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
