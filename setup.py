from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

requirements = ["numpy", "scipy", "torch", "torchtestcase", "vegas"]

setup(
    name="cepspace",
    version="0.1.0",
    description="Batched relativistic phase-space sampling for central exclusive production",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    packages=find_packages(exclude=["tests"]),
    install_requires=requirements,
    extras_require={"test": ["pytest"]},
)
