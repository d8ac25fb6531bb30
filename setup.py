from setuptools import setup, find_packages

setup(
    name="kgengine",
    version="0.1.0",
    packages=find_packages(include=["kgengine", "kgengine.*"]),
    install_requires=[
        "requests",
        "pyyaml",
        # Graph index, paths and adjacency matrices
        "networkx>=3.0",
        "numpy>=1.24",
        "tqdm>=4.60",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kgengine=kgengine.cli:main",
        ],
    },
    python_requires=">=3.10",
    description="Analytics engine for project knowledge graphs.",
)
