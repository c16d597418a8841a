[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "specmarket"
version = "0.1.0"
description = "Domain services for a marketplace of video and content-production specialists: search, feed indexing, reviews, profiles, rate limiting and LLM-assisted checks."
requires-python = ">=3.10"
dependencies = []
keywords = ["marketplace", "search", "profiles", "reviews", "llm", "rate-limiting"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["specmarket"]

[tool.pytest.ini_options]
addopts = "-ra"
