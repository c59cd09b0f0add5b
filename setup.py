from setuptools import setup, find_packages

setup(
    name="turtlecoin-api-proxy",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
        "aiohttp",
        "prometheus-client"
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx"
        ]
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "turtle-proxy=proxy.__main__:main",
        ],
    }
)
