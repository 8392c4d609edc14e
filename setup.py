"""Setup script for Copy Monitor."""

from setuptools import setup, find_packages
from pathlib import Path

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    with open(requirements_file) as f:
        requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    with open(readme_file, encoding='utf-8') as f:
        long_description = f.read()

setup(
    name="copy-monitor",
    version="1.0.0",
    author="Copy Monitor Team",
    description="Removable-media copy tracking and pricing daemon",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=requirements,
    extras_require={
        "dbus": ["pydbus", "PyGObject"],
        "journal": ["systemd-python"],
        "test": ["pytest>=7"],
    },
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "copy-monitord=copy_monitor.daemon:main",
            "copy-monitor=copy_monitor.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Filesystems",
    ],
)
