"""
Setup script for ethos-sim.

ethos-sim drives simulated learner activity against the Ethos learning
platform once content has been published:

1. Enrollment discovery - Find learning item enrollments through several
   query strategies and wait for them to appear
2. Lesson completion - Mark lesson enrollments complete
3. Quiz answering - Answer quizzes to hit a target percentage

The 'ethos-sim' command is the entry point.
"""

from setuptools import find_namespace_packages, setup

setup(
    name="ethos-sim",
    version="0.1.0",
    description="Enrollment discovery and learner activity simulation for the Ethos LMS",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_namespace_packages(include=["src", "src.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ethos-sim=src.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="ethos lms enrollment simulation cli",
)
