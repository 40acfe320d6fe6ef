#!/usr/bin/env python
"""
Sales Dashboard Backend Setup
"""

from pathlib import Path

from setuptools import setup, find_packages

here = Path(__file__).parent

long_description = (here / "README.md").read_text(encoding="utf-8")

with open(here / "requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="sales-dashboard",
    version="1.0.0",
    description="CSV ingestion and paginated query API for a retail sales dashboard",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["src", "src.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: FastAPI",
        "Topic :: Database",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.26.0",
            "black>=23.0.0",
            "ruff>=0.1.0",
            "mypy>=1.5.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sales-seed=src.ingestion.seed_db:run",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords=[
        "sales",
        "dashboard",
        "fastapi",
        "etl",
        "csv",
        "postgresql",
    ],
)
