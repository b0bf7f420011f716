"""
memopass: Compile-Time Function Memoization Pass

Identifies functions whose results depend only on their inputs and
rewrites their call sites into canonical memoized variants:
1. Eligibility analysis (purity, call depth, recursion, global reads)
2. Canonical signatures with captured globals
3. Constant folding into variant identities
4. Variant metadata for lookup-table construction
"""

from setuptools import setup, find_packages

setup(
    name="memopass",
    version="1.0.0",
    description="Compile-time function memoization pass over an LLVM-style IR",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    author="memopass developers",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "llvmlite>=0.40",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "memopass=memopass.cli:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Compilers",
    ],
)
