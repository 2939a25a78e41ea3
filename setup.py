#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup script for licensebill

Billing calculation engine for software license sales: perpetual S&M,
subscriptions, installments, rentals and VAR commission.
"""

from pathlib import Path

from setuptools import find_packages, setup

VERSION = "1.0.0"

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")
else:
    long_description = "licensebill - Software License Billing Engine"

setup(
    name="licensebill",
    version=VERSION,
    description="Billing calculation engine for software license sales",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="licensebill Team",
    license="MIT",
    packages=find_packages(include=["licensebill", "licensebill.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "prometheus_client>=0.17",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Intended Audience :: Financial and Insurance Industry",
    ],
)
