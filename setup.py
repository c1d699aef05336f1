#!/usr/bin/env python3
"""
Setup script for OrderLink.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="orderlink",
    version="0.1.0",
    description="Real-time order chat and agent location gateway over authenticated websockets",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="OrderLink Contributors",
    packages=find_packages(include=["orderlink", "orderlink.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "uvicorn>=0.30.0",
        "python-dotenv>=1.0.0",
        "cryptography>=41.0.0",
        "click>=8.1.0",
        "pyyaml>=6.0",
        "redis>=5.0.1",
        "aiosqlite>=0.19.0",
    ],
    extras_require={
        "postgres": [
            "asyncpg>=0.29.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "orderlink=orderlink.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Communications :: Chat",
    ],
    keywords="websocket chat realtime asgi redis",
)
