#!/usr/bin/env python3
"""Setup configuration for ntp-time-sync package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read long description from README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text() if readme_path.exists() else ""

setup(
    name="ntp-time-sync",
    version="1.0.0",
    description="Fetches the current time from NTP servers and returns offset information",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="GPL-3.0",

    package_dir={"": "src"},
    packages=find_packages(where="src"),

    python_requires=">=3.9",

    install_requires=[
        "numpy>=1.20.0",
        "toml>=0.10.0",
        "ntplib>=0.4.0",
    ],

    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
        ],
    },

    entry_points={
        "console_scripts": [
            "ntp-time-sync=ntp_time_sync.main:main",
        ],
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Framework :: AsyncIO",
        "Topic :: System :: Networking :: Time Synchronization",
    ],

    keywords="ntp sntp clock offset time synchronization udp",
)
