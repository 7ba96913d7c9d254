[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tdexa"
version = "0.0.1"
description = "Analytics for TDEX liquidity markets: collects market prices and balances, stores them and returns them by time range."
requires-python = ">=3.10"
keywords = ["tdex", "liquid", "bitcoin", "analytics", "market", "prices", "balances", "influxdb"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Investment",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
tdexa = "tdexa.cli:main"
tdexa-datagen = "tdexa.datagen:main"

[tool.hatch.build.targets.wheel]
packages = ["tdexa"]

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
