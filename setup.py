# SPDX-License-Identifier: Apache-2.0
from setuptools import setup, find_packages

setup(
    name="recboard",
    version="0.1.0",
    packages=find_packages(include=["recboard", "recboard.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "sqlmodel",
        "sqlalchemy",
        "pydantic>=2",
        "pydantic-settings",
        "slowapi",
        "click",
        "cachetools",
        "python-multipart",
    ],
    extras_require={"test": ["pytest", "httpx"]},
    entry_points={"console_scripts": ["recboard=recboard.cli:main"]},
)
