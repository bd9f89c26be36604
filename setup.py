"""
Clone Lab Setup Configuration.

This allows the pipeline to be installed via pip.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="clonelab",
    version="1.0.0",
    author="Builder Voice AI",
    author_email="sdk@bvrai.com",
    description="Speaker voice cloning pipeline with verified provider cloning and quality scoring",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
    ],
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "boto3>=1.28.0",
        "fastapi>=0.104.0",
        "httpx>=0.25.0",
        "numpy>=1.24.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-multipart>=0.0.6",
        "structlog>=23.1.0",
        "uvicorn>=0.24.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "clonelab-api=clonelab.api.app:main",
        ],
    },
    keywords=[
        "voice",
        "cloning",
        "tts",
        "elevenlabs",
        "speech",
    ],
)
