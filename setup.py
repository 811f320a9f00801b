"""
Setup script for mastery-engine.

mastery-engine is the adaptive core of a tutoring application. It serves
three roles:

1. Placement - adaptive diagnostic that finds a learner's knowledge frontier
2. Progress - per-topic mastery with prerequisite gating
3. Review - FIRe spaced repetition with implicit repetition and compression

The 'mastery' command is the CLI entry point; 'mastery serve' runs the HTTP API.
"""

from setuptools import find_packages, setup

setup(
    name="mastery-engine",
    version="0.1.0",
    description="Adaptive mastery, placement diagnostics and FIRe review scheduling",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["mastery_engine", "mastery_engine.*"]),
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP API
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "httpx>=0.25.0",
        # Content
        "pyyaml>=6.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mastery=mastery_engine.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Framework :: FastAPI",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition mastery adaptive diagnostic education",
)
