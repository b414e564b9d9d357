[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "champtrace"
version = "0.1.0"
description = "Instruction-trace tools for a cycle-level microarchitecture simulator: binary record packing, branch-kind inference, clocked components and CVP-1 trace conversion."
requires-python = ">=3.10"
dependencies = []
keywords = ["simulation", "trace", "microarchitecture", "branch", "cvp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[project.scripts]
cvp2champtrace = "champtrace.cvp_convert:main"

[tool.hatch.build.targets.wheel]
packages = ["champtrace"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
