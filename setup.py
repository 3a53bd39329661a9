from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = ""
if readme_path.exists():
    with open(readme_path, encoding="utf-8") as f:
        long_description = f.read()

install_requires = [
    "numpy>=1.19.2",
    "pandas>=1.5.0",
    "pyyaml>=5.4.1",
    "toml>=0.10.2",
    "watchdog>=2.1.0",
    "structlog>=21.1.0",
    "psutil>=5.8.0",
    "jinja2>=3.0.0",
    "requests>=2.26.0",
]

# Optional extras
extras_require = {
    "dev": [
        "pytest>=6.2.4",
        "pytest-cov>=2.12.1",
        "pytest-asyncio>=0.15.1",
        "pytest-mock>=3.6.1",
        "black>=21.7b0",
        "flake8>=3.9.2",
        "mypy>=0.910",
    ],
}

setup(
    name="flowperf",
    version="0.1.0",
    description="Performance telemetry and analysis engine for asyncio applications",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["flowperf", "flowperf.*"]),
    python_requires=">=3.10",
    install_requires=install_requires,
    extras_require=extras_require,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Topic :: System :: Monitoring",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: OS Independent",
    ],
    keywords="performance profiling monitoring memory-leaks web-vitals",
    include_package_data=True,
)
