[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "knoperator"
version = "0.1.0"
description = "Manifest stages, filters and transformers for Knative Serving and Eventing resources"
requires-python = ">=3.10"
keywords = ["knative", "kubernetes", "operator", "manifest", "ingress", "transformer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["knoperator"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
