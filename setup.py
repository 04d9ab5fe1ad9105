"""Setup configuration for backupctl."""

from setuptools import setup, find_packages

setup(
    name="backupctl",
    version="1.0.0",
    description="Scheduled PostgreSQL and Redis backups with retention sweeps",
    author="Your Name",
    packages=find_packages(include=["backupctl", "backupctl.*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "redis>=5.0.0",
        "structlog>=24.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "backupctl=backupctl.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
