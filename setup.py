"""Setup configuration for hardware_advisor package."""

from setuptools import setup, find_packages

# Git repository URL of the optional Hub integration
LLM_D_BENCHMARK_REPO = "https://github.com/llm-d/llm-d-benchmark.git"

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

install_requires = [
    "streamlit>=1.28.0",
    "pandas>=2.0.0",
    "psutil>=5.9.0",
    "nvidia-ml-py>=12.535.0",
]

setup(
    name="hardware-advisor",
    version="0.1.0",
    author="Hardware Advisor Team",
    description="Hardware recommendation engine for ML inference and training",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require={
        "hub": [
            f"config_explorer @ git+{LLM_D_BENCHMARK_REPO}#subdirectory=config_explorer",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "hardware-advisor=hardware_advisor.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
