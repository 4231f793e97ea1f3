#!/usr/bin/env python3
"""
Setup script for ProtoView
"""

from setuptools import setup, find_packages

setup(
    name="protoview",
    version="0.1.0",
    description="Confidence classification and deduplication of predicted protein interactions",
    packages=find_packages(),
    package_data={
        "protoview": ["db/migrations/*.sql"],
    },
    install_requires=[
        "psycopg2-binary>=2.9.3",
        "pyyaml>=6.0",
        "numpy>=1.22.0",
        "pandas>=1.4.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'protoview=protoview.cli.main:main',
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
    ],
    python_requires=">=3.8",
)
