#!/usr/bin/env python3
"""
Packaging for Cyto Workbench.

Allows standard pip installs, including editable installs with pip install -e .
"""

from setuptools import setup, find_packages

setup(
    name="cyto-workbench",
    version="0.3.0",
    description="Flow cytometry FCS decoding, spillover compensation and density tooling",
    license="MIT",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.6.0",
        "pydantic>=2.5.0",
        "rich>=13.7.0",
        "numpy>=1.26.0",
    ],
    extras_require={
        "test": ["pytest>=7.4.0"],
    },
    entry_points={
        "console_scripts": [
            "cyto-workbench=cyto_workbench.main:main",
        ],
    },
)
