"""
Setup script for tensor-codecs
"""

from setuptools import setup, find_packages
from pathlib import Path
import re

# Read version from __init__.py
init_file = Path(__file__).parent / "tensor_codecs" / "__init__.py"
version_match = re.search(r'^__version__\s*=\s*["\']([^"\']+)["\']', init_file.read_text(), re.MULTILINE)
version = version_match.group(1) if version_match else "0.0.0"

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

setup(
    name="tensor-codecs",
    version=version,
    description="Block quantization (Q8_0, Q4_0) and top-k sparsity codecs for float32 tensors",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["tensor_codecs", "tensor_codecs.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0",
        "colorama>=0.4.6",
    ],
    extras_require={
        "dev": ["pytest>=7.0.0"],
    },
    entry_points={
        "console_scripts": [
            "tensor-codecs=tensor_codecs.cli:main",
        ],
    },
)
