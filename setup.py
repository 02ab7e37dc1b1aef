from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="permgate",
    version="0.1.0",
    description="Permission template application and grant simulation engine",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["permgate", "permgate.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Security",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.11",
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "rich>=13.7.0",
        "sqlalchemy>=2.0.23",
        "structlog>=23.2.0",
    ],
    extras_require={
        "postgres": [
            "psycopg2-binary>=2.9.9",
        ],
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "permgate=permgate.cli:cli",
        ],
    },
)
