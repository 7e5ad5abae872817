[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "opwriting"
version = "0.1.0"
description = "Command-line tools for managing a writing repository of post directories across Git branches"
requires-python = ">=3.10"
dependencies = [
    "python-dotenv",
]
keywords = ["writing", "git", "posts", "fzf", "github", "cli"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX",
    "Operating System :: MacOS",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Version Control :: Git",
    "Topic :: Text Processing :: Markup :: Markdown",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
opwriting = "opwriting.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["opwriting"]

[tool.pytest.ini_options]
addopts = "-ra"
