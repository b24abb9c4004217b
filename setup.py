"""
SiteTrace Setup Configuration
by BitSpectreLabs
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    requirements = [
        line.strip()
        for line in requirements_file.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.startswith("#")
    ]

setup(
    name="sitetrace",
    version="1.0.0",
    author="BitSpectreLabs",
    description="Website network diagnostics: multi-resolver DNS lookups, traceroute and ping",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/BitSpectreLabs/SiteTrace",
    packages=find_packages(exclude=["*.tests", "*.tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Intended Audience :: Information Technology",
        "Topic :: System :: Networking",
        "Topic :: System :: Networking :: Monitoring",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Environment :: Console",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.21.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.0.0",
            "isort>=5.12.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sitetrace=sitetrace.cli.main:main",
        ],
    },
    keywords=[
        "dns",
        "nslookup",
        "traceroute",
        "ping",
        "network diagnostics",
    ],
    project_urls={
        "Bug Reports": "https://github.com/BitSpectreLabs/SiteTrace/issues",
        "Source": "https://github.com/BitSpectreLabs/SiteTrace",
    },
)
