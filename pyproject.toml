[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nrsc"
version = "0.1.0"
description = "Canonical object hashing, checksummed addresses and business validation for a DAG-based ledger"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["ledger", "dag", "utxo", "hashing", "chash", "payments"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Office/Business :: Financial",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["nrsc"]

[tool.pytest.ini_options]
addopts = "-ra"
