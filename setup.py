from setuptools import setup, find_packages

setup(
    name="signal-cancel",
    version="0.1.0",
    description="Turn SIGINT/SIGTERM into cooperative cancellation tokens for asyncio services",

    package_dir={"": "src"},
    packages=find_packages(where="src"),

    install_requires=[
        "structlog>=23.1.0",
    ],

    extras_require={
        "dev": [
            "pytest>=7.3.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "black>=23.3.0",
            "mypy>=1.3.0",
            "ruff>=0.0.270",
        ],
    },

    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
    ],
)
