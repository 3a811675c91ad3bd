# type: ignore
"""Fairly minimal certfixtures setup.py for setuptools."""
import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="certfixtures",
    version="0.1.0",
    description="Generates a deterministic tree of X.509 test certificates, CAs and CRLs using openssl.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=["certfixtures"],
    entry_points={"console_scripts": ["certfixtures = certfixtures.certfixtures:main"]},
    classifiers=[
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=["cryptography", "pid", "pydantic-settings", "PyYAML"],
    extras_require={"test": ["pytest"]},
    include_package_data=True,
)
