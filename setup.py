from setuptools import find_packages, setup

setup(
    name="qlsp",
    version="0.1.0",
    description="A small framework for Language Server Protocol servers, "
    "with an example server that runs SQL on hover",
    python_requires=">=3.9",
    packages=find_packages(include=["qlsp", "qlsp.*"]),
    install_requires=[
        "duckdb>=1.0.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "qlsp-sql=qlsp.cli:main",
        ],
    },
)
