"""Setup script for the image generation MCP server."""

from setuptools import setup, find_packages

install_requires = [
    "anyio>=4.0",
    "asyncer>=0.0.8",
    "httpx>=0.27",
    "mcp>=1.2,<2",
    "pydantic>=2.5",
    "pydantic-settings>=2.1",
    "python-dotenv>=1.0",
    "typing-extensions>=4.8",
]

test_requires = [
    "pytest>=8.0",
    "respx>=0.21",
]

setup(
    name="imagegen-mcp",
    version="1.0.0",
    description="MCP server that generates images and saves them to local disk",
    packages=find_packages(include=["imagegen", "imagegen.*"]),
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require={"test": test_requires},
    entry_points={
        "console_scripts": [
            "imagegen-mcp=imagegen.interfaces.mcp.server:main",
        ],
    },
)
