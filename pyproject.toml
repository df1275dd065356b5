[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vmpeek"
version = "0.1.0"
description = "Inspect guest disk images and memory snapshots: ext2 directory watching, page-table walks and kernel page-directory search"
requires-python = ">=3.10"
dependencies = []
keywords = ["ext2", "virtual machine", "introspection", "page tables", "disk monitoring", "memory forensics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Filesystems",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vmpeek"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
