[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kpdbparse"
version = "0.1.0"
description = "Read MSF/PDB symbol files: public symbol offsets, CodeView type records and structure member offsets."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "pdb",
    "msf",
    "codeview",
    "symbols",
    "debugging",
    "tpi",
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
    "Topic :: Software Development :: Debuggers",
    "Topic :: File Formats",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kpdbparse = "kpdbparse.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["kpdbparse"]

[tool.hatch.build.targets.sdist]
include = ["kpdbparse", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
