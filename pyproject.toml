[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rdup"
version = "1.1.15"
description = "Generate full or incremental backup file lists, translate them into archives, and restore them into directory trees"
requires-python = ">=3.10"
keywords = ["backup", "incremental", "archive", "tar", "cpio", "pax", "filelist", "restore"]
classifiers = [
    "Development Status :: 5 - Production/Stable",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Backup",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
rdup = "rdup.main:main"
rdup-tr = "rdup.tr:main"
rdup-up = "rdup.up:main"

[tool.hatch.build.targets.wheel]
packages = ["rdup"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
