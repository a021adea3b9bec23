from __future__ import annotations

from pathlib import Path
from setuptools import find_packages, setup

BASE_DIR = Path(__file__).parent
README = (BASE_DIR / "readme.md").read_text(encoding="utf-8") if (BASE_DIR / "readme.md").exists() else ""

setup(
    name="classroom-scheduling",
    version="0.1.0",
    description="Class scheduling, recurring series and time-weighted attendance for live online classes.",
    long_description=README,
    long_description_content_type="text/markdown",
    author="Hamidur",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    package_data={"classroom_scheduling.data": ["migrations/*.sql"]},
    python_requires=">=3.10",
    install_requires=[
        "python-dotenv>=1.0.0",
        "python-dateutil>=2.8.2",
        "structlog>=23.1.0",
        "tzdata>=2023.3",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "classroom-scheduling=classroom_scheduling.main:main",
        ]
    },
)
