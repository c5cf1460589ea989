from setuptools import setup, find_packages

setup(
    name="dagflow",
    version="0.1",
    packages=find_packages(include=["dagflow", "dagflow.*"]),
    install_requires=[
        "pydantic>=2",
        "pydantic-ai-slim[openai]>=1.0",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite",
        "python-dotenv",
        "httpx",
        "pyyaml",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "pytest-cov",
        ],
    },
)
