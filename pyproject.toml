[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "atmoctl"
version = "0.1.0"
description = "Command-line tool for inspecting OVN routers and triggering gateway chassis failover"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["ovn", "ovsdb", "openstack", "neutron", "router", "failover", "cli"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
atmosphere = "atmoctl.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["atmoctl"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
