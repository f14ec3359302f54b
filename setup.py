"""
Setup configuration for Team Orchestrator package
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="team-orchestrator",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Task graph scheduling, messaging and shared state for a team of worker agents",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/team-orchestrator",
    packages=find_packages(include=["team_orchestrator", "team_orchestrator.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.9",
    install_requires=[
        "langgraph>=0.2.0",
        "python-dotenv>=1.0.0",
        "redis>=4.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "black>=23.0",
            "flake8>=6.0",
            "mypy>=1.0",
        ],
    },
)
