"""Packaging for socialstore (src layout)."""

from setuptools import find_packages, setup

setup(
    name="social-agent-store",
    version="0.1.0",
    description="Durable JSON document store with content deduplication for a social-media agent",
    python_requires=">=3.11",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "click>=8.1",
        "numpy>=1.26",
    ],
    extras_require={
        "fastembed": ["fastembed>=0.3"],
        "test": ["pytest>=8"],
    },
    entry_points={
        "console_scripts": [
            "socialstore=socialstore.cli:main",
        ],
    },
)
