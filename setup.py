from setuptools import setup, find_packages

setup(
    name="fleetguard",
    version="0.1.0",
    packages=find_packages(include=["guard", "guard.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "httpx>=0.26",
        "redis>=5.0",
        "sqlalchemy[asyncio]>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "aiosqlite>=0.19",
        ],
    },
)
