"""
Venue Catalog - duplicate detection and merging for event venues
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="venue-catalog",
    version="0.1.0",
    description="Venue deduplication and merge engine for an events platform",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4",
            "hypothesis>=6.80",
        ],
        "postgres": [
            "psycopg2-binary>=2.9",
        ],
    },
    entry_points={
        "console_scripts": [
            "venuedup=core.cli:main",
        ],
    },
    include_package_data=True,
)
