from setuptools import setup, find_packages

setup(
    name="blobblocks",
    version="0.1.0",
    description="Content-addressable block store backed by Azure blob storage.",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "azure-core>=1.26",
        "azure-storage-blob>=12.14",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "blobblocks=blobblocks.client:main",
        ],
    },
)
