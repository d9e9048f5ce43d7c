"""
Setup script for sales-tool-detector project.

Allows development installation with `pip install -e .`
"""

from setuptools import setup, find_packages

setup(
    name="sales-tool-detector",
    version="0.1.0",
    packages=find_packages(include=["src", "src.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pymongo>=4.6",
        "python-dotenv>=1.0",
        "pydantic>=2.5",
        "langchain-core>=0.2",
        "langchain-openai>=0.1",
        "openai>=1.30",
        "tenacity>=8.2",
        "requests>=2.31",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-mock>=3.12",
            "httpx",
        ],
    },
)
