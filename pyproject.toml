[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tsarkit"
version = "0.1.0"
description = "Collectors and rate calculators for Linux system and service statistics"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "monitoring",
    "metrics",
    "procfs",
    "linux",
    "cpu",
    "memory",
    "network",
    "nginx",
    "squid",
    "haproxy",
    "lvs",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tsarkit"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
