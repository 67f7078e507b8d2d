[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "marketauth"
version = "1.0.0"
description = "JWT authentication HTTP service with refresh tokens, roles and admin user management"
requires-python = ">=3.10"
keywords = ["jwt", "authentication", "refresh-token", "flask", "roles"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Security",
]
dependencies = [
    "flask",
    "pyjwt",
    "bcrypt",
    "redis",
    "sqlalchemy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
marketauth = "marketauth.app:main"

[tool.hatch.build.targets.wheel]
packages = ["marketauth"]

[tool.pytest.ini_options]
addopts = "-ra"
