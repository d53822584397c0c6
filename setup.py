#!/usr/bin/env python3
"""
Setup script for Warden.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    requirements = [
        line.strip()
        for line in requirements_file.read_text().splitlines()
        if line.strip() and not line.startswith("#")
    ]

setup(
    name="warden-auth",
    version="0.1.0",
    description="Authentication, session lifecycle and login-risk core",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Warden Contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"warden.notify": ["templates/*.txt"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=requirements or [
        "argon2-cffi>=23.1.0",
        "cryptography>=41.0.0",
        "python-dotenv>=1.0.0",
        "jinja2>=3.1.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "warden=warden.cli.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Topic :: Security",
    ],
)
