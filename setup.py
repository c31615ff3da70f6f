from setuptools import find_namespace_packages, setup

setup(
    name="pyicmpprobe",
    version="0.1.0",
    author="Vilmen Abramian",
    author_email="vilmen.abramian@gmail.com",
    platforms=["any"],
    license="MIT",
    packages=find_namespace_packages(include=["pyprobe", "pyprobe.*"]),
    install_requires=[
        "click==8.1.7",
        "colorama==0.4.6",
        "pydantic==2.11.4",
        "tabulate==0.9.0",
    ],
    tests_require=[
        "pytest",
        "numpy==2.2.5",
    ],
    extras_require={
        "test": [
            "pytest",
            "numpy==2.2.5",
        ],
    },
    entry_points={
        "console_scripts": [
            "probe = pyprobe.main:cli",
        ],
    },
    python_requires=">=3.11",
)
