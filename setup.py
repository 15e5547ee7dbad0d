"""Setup configuration for prdecorator"""

from setuptools import setup, find_packages

setup(
    name="pr-quality-decorator",
    version="0.1.0",
    description=(
        "CLI tool that decorates GitHub, GitLab, Bitbucket and Azure DevOps pull "
        "requests with code-quality analysis results."
    ),
    author="PR Quality Decorator Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
        "PyJWT[crypto]>=2.6.0",
        "cryptography>=41.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "pr-decorator=prdecorator.main:main",
        ],
    },
)
