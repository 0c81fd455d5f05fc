from setuptools import setup, find_packages

setup(
    name="candle_fetch",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "ccxt>=4.0",
        "colorama>=0.4.6",
        "numpy",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
        ],
    },
    entry_points={
        'console_scripts': [
            'candle-fetch=candle_fetch.cli:main',
        ],
    },
    # Metadata
    description="Dump historical OHLCV candles from Bybit to CSV on stdout",
    long_description=open('README.md').read(),
    long_description_content_type="text/markdown",
    keywords="trading,candles,ohlcv,crypto,bybit,csv",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
)
