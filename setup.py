# setup.py
from setuptools import setup, find_packages

setup(
    name="pocketguard",
    version="0.1.0",
    description="Personal expense tracking API with budget and balance insights",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "click>=7.0",
        "pyyaml>=5.3",
        "python-dotenv>=0.19",
        "fastapi>=0.95",
        "uvicorn>=0.20",
        "bcrypt>=4.0",
        "PyJWT>=2.4",
        "google-auth>=2.0.0",
        "requests>=2.25",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "httpx>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "pocketguard=pocketguard.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
