[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bcodegen"
version = "0.1.0"
description = "Intermediate representation, name resolution helpers and assembly generators for a small B compiler"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "b-language",
    "compiler",
    "code-generation",
    "assembly",
    "fasm",
    "x86-64",
    "aarch64",
    "intermediate-representation",
]
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
    "Topic :: Software Development :: Compilers",
    "Topic :: Software Development :: Code Generators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bcodegen"]

[tool.hatch.build.targets.sdist]
include = ["bcodegen", "tests"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
