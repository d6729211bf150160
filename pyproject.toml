[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kubemetrics"
version = "0.1.0"
description = "Decode Kubelet resource metrics and serve node and pod usage in the shape of the metrics.k8s.io API"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "kubernetes",
    "metrics",
    "kubelet",
    "monitoring",
    "prometheus",
    "resource-usage",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kubemetrics"]

[tool.hatch.build.targets.sdist]
include = ["kubemetrics", "tests", "README.md", "pyproject.toml"]

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
