[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dnscollect"
version = "0.1.0"
description = "Decode DNS wire-format messages and EDNS options, and render them as JSON or text lines"
requires-python = ">=3.10"
dependencies = []
keywords = ["dns", "edns", "parser", "wire-format", "logging"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dnscollect"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
