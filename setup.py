"""
Crossover Trader
Multi-instrument moving-average crossover trading engine for OKX perpetual swaps
"""

from setuptools import setup, find_packages

setup(
    name="crossover-trader",
    version="0.1.0",
    description="MA crossover trading engine for OKX with demo, live and paper modes",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#")
    ],
    extras_require={
        "dev": [
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
            "isort>=5.12.0",
            "pytest>=7.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ct-trade=crossover_trader.cli:main",
        ]
    },
)
