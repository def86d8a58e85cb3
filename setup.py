from setuptools import setup, find_packages


setup(
    name="tarpack",
    version="0.1",
    packages=find_packages(),
    description="A USTAR tape-archive codec: pack directory trees into .tar/.tar.gz and unpack them again.",
    author="vercingetorx",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "tarpack=tarpack.cli:main",
        ]
    },
)
