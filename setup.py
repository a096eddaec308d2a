#!/usr/bin/env python3
"""
NetSDR Client Library

Control and IQ streaming client for NetSDR-protocol network receivers:
binary control item codec, asyncio TCP control channel, asyncio UDP data
channel and a receiver session on top.

Installation:
    pip install .

    # With development dependencies:
    pip install -e ".[dev]"

Usage:
    # Stream IQ data for 10 seconds
    netsdr-client --host 192.168.1.50 --freq 14074000 --secs 10

Author: NetSDR Client Project
License: MIT
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_path = Path(__file__).parent / "README.md"
long_description = ""
if readme_path.exists():
    long_description = readme_path.read_text()

setup(
    name="netsdr-client",
    version="0.1.0",
    author="NetSDR Client Project",
    author_email="",
    description="Control and IQ streaming client for NetSDR network receivers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",

    package_dir={"": "src"},
    packages=find_packages(where="src"),

    python_requires=">=3.8",

    install_requires=[
        "numpy>=1.20.0",
    ],

    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.20.0",
            "black>=22.0.0",
            "mypy>=0.990",
        ],
    },

    entry_points={
        "console_scripts": [
            "netsdr-client=netsdr.client:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering",
        "Topic :: Communications :: Ham Radio",
    ],

    keywords=[
        "netsdr", "sdr", "radio", "iq-data", "streaming", "rfspace", "asyncio"
    ],
)
