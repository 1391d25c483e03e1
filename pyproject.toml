[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rrepub"
version = "0.1.0"
description = "Convert Royal Road books into EPUB files and keep them up to date"
requires-python = ">=3.10"
keywords = ["epub", "ebook", "royal-road", "web-fiction", "downloader"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Text Processing :: Markup :: HTML",
]
dependencies = [
    "requests>=2.28",
    "beautifulsoup4>=4.11",
    "pillow>=9.5",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
rrepub = "rrepub.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["rrepub"]

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
ignore_missing_imports = true
