from setuptools import setup, find_packages

setup(
    name="finproxy",
    version="1.0.0",
    description="Allowlisted, rate limited and cached proxy for finance data APIs",
    packages=find_packages(include=["finproxy", "finproxy.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette",
        "uvicorn[standard]",
        "httpx>=0.27",
        "pydantic>=2.7",
        "pydantic-settings>=2.7",
    ],
    extras_require={
        "test": [
            "pytest>=8",
            "pytest-asyncio>=0.23",
            "respx>=0.21",
        ],
    },
)
