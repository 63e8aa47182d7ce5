from setuptools import setup, find_packages

setup(
    name="qknorm",
    version="0.1.0",
    packages=find_packages(include=["qknorm", "qknorm.*"]),
    install_requires=[
        "numpy>=1.20",
        "omegaconf>=2.1",
    ],
    extras_require={
        "test": ["pytest>=7.0", "torch"],
    },
    python_requires=">=3.8",
)
