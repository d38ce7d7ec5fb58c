[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lightnet"
version = "0.1.0"
description = "Small networking toolkit: DHCP client, DNS resolver, UDP and TCP helpers and a minimal REST client"
requires-python = ">=3.10"
dependencies = []
keywords = ["dhcp", "dns", "udp", "tcp", "http", "rest", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lightnet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
