[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sysstress"
version = "0.1.0"
description = "CPU and memory stress tester for Linux with pass/fail verdicts and performance reporting"
requires-python = ">=3.10"
keywords = ["stress", "benchmark", "burn-in", "cpu", "memory", "numa"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
    "Topic :: System :: Hardware",
]
dependencies = [
    "psutil",
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
sysstress = "sysstress.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["sysstress"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
