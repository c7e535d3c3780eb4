[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emberweb"
version = "0.1.0"
description = "A small epoll-based static HTTP server with form login, rotating log files and a local command shell"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "server", "epoll", "static-files", "timer", "logging", "unix-socket", "shell"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
emberweb = "emberweb.webserver:main"
emberweb-shell-server = "emberweb.shellserver:main"
emberweb-shell = "emberweb.shelltools:main"

[tool.hatch.build.targets.wheel]
packages = ["emberweb"]

[tool.pytest.ini_options]
addopts = "-ra"
