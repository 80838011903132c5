from setuptools import setup, find_packages

setup(
    name="bytegate",
    version="1.0.0",
    packages=find_packages(include=["bytegate", "bytegate.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.6",
        "pydantic-settings>=2.7",
        "httpx>=0.27",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "asyncpg>=0.29",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "respx>=0.21",
        ],
    },
)
