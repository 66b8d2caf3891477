[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xwatch"
version = "0.1.0"
description = "Building blocks for a folder-watching service: data directories, daily log mailing over SMTP and event pipelines."
requires-python = ">=3.10"
dependencies = []
keywords = ["monitoring", "file-watch", "smtp", "mail", "pipeline"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Communications :: Email",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["xwatch"]

[tool.pytest.ini_options]
addopts = "-ra"
