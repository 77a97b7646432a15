[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "toxiproxy"
version = "2.0.0"
description = "Building blocks for simulating network conditions in tests: channels, chainable toxics such as latency, bandwidth limits and timeouts, and collections that manage them."
requires-python = ">=3.10"
dependencies = []
keywords = ["testing", "chaos", "network", "latency", "fault-injection", "toxics"]
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
    "Topic :: Software Development :: Testing",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["toxiproxy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
