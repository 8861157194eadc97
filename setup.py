"""Setup configuration for Walkthrough Studio."""

from setuptools import setup, find_packages

setup(
    name="walkthrough-studio",
    version="0.1.0",
    description="Authoring, review and publishing pipeline for vehicle inspection walkthroughs",
    author="Walkthrough Studio Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={
        "walkthrough_studio": [
            "data/defaults/*.yaml",
            "templates/*.j2",
        ],
    },
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "rich>=13.0.0",
        "typer>=0.9.0",
        "pyyaml>=6.0",
        "jinja2>=3.1.0",
        "python-dotenv>=1.0.0",
        "flask>=2.3.0",
    ],
    extras_require={
        "spreadsheet": [
            "pandas>=2.0.0",
            "openpyxl>=3.1.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "black>=23.0.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "walkthrough-studio=walkthrough_studio.ui.cli:main",
        ],
    },
)
