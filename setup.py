# pylint: disable=missing-module-docstring
from pathlib import Path

from setuptools import setup, find_packages

with open("requirements.in", encoding="utf-8") as f:
    requirements = f.read().splitlines()

with open("requirements_dev.in", encoding="utf-8") as f:
    dev_requirements = f.read().splitlines()

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="streamrotor",
    version="1.0.0",
    description="streamrotor rotates generations of source producers under the fixed consumer "
    "slots of a batch aggregator.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="streamrotor Team",
    license="LGPL-2.1 license",
    classifiers=[
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=["setuptools"] + requirements,
    extras_require={"dev": dev_requirements},
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "streamrotor = streamrotor.run_streamrotor:cli",
        ]
    },
)
