"""Setup script for inkreader."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, test tools go to the test extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
test_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("pytest"):
            test_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="inkreader",
    version="0.1.0",
    description="Captured web pages as paginated documents on e-ink displays",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="inkreader developers",
    packages=find_packages(include=["inkreader", "inkreader.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.9",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Hardware",
        "Topic :: Text Processing :: Markup :: HTML",
        "Framework :: AsyncIO",
    ],
    keywords="e-ink reader remarkable framebuffer html markdown pagination",
    entry_points={
        "console_scripts": [
            "inkreader=inkreader.__main__:main",
        ],
    },
    zip_safe=False,
    platforms=["linux"],
)
