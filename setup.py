"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/kikai-build/kikai"
KEYWORDS = "android ndk cross-compilation autotools build incremental toolchain"
HERE = os.path.dirname(os.path.abspath(__file__))


def read_version() -> str:
    path = os.path.join(HERE, "src", "kikai", "__init__.py")
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            if line.startswith("__version__"):
                return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("Unable to find __version__")


if __name__ == "__main__":
    setup(
        name="kikai",
        version=read_version(),
        description="Incremental cross-compilation build orchestrator",
        keywords=KEYWORDS,
        url=URL,
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        python_requires=">=3.10",
        install_requires=[
            "requests",
            "tqdm",
            "PyYAML",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "kikai=kikai.cli:main",
            ],
        },
        include_package_data=True)
