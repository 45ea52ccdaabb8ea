from setuptools import setup, find_packages


setup(
    name="pgparmor",
    version="0.1",
    packages=find_packages(exclude=["scripts"]),
    description="OpenPGP-style ASCII armor: armor, dearmor and verify binary blocks with CRC-24 checksums.",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "pgparmor=pgparmor.cli:main",
        ]
    },
)
