#!/usr/bin/env python3
"""
Setup script for the Tournament Assistant websocket client
"""

from setuptools import setup, find_packages

setup(
    name="ta-client",
    version="0.1.0",
    description="Websocket client for the Tournament Assistant match coordination protocol",
    packages=find_packages(include=["taproto", "taproto.*", "taclient", "taclient.*"]),
    install_requires=[
        "websockets==15.0",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "aioconsole==0.8.1",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'ta-client=taclient.cli:main',
        ],
    },
)
