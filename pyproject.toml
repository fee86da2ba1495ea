[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mprpc"
version = "0.1.0"
description = "A small RPC framework with length-prefixed binary messages, ZooKeeper service discovery and consistent-hash routing"
requires-python = ">=3.10"
dependencies = []
keywords = ["rpc", "zookeeper", "service-discovery", "consistent-hashing", "distributed"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mprpc-provider = "mprpc.examples:provider_main"
mprpc-consumer = "mprpc.caller:main"

[tool.hatch.build.targets.wheel]
packages = ["mprpc"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
