#!/usr/bin/env python3
"""
Setup script for the Remote Interview Proctoring Engine.
"""

import os
import sys
from setuptools import setup, find_packages
from setuptools.command.install import install
from setuptools.command.develop import develop

HERE = os.path.dirname(os.path.abspath(__file__))


def read_requirements(filename):
    """Read requirements from file."""
    with open(os.path.join(HERE, filename), 'r') as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]


def check_system_requirements():
    """Check if system meets requirements."""
    print("Checking system requirements...")

    # Check Python version
    if sys.version_info < (3, 9):
        print("ERROR: Python 3.9 or higher is required")
        return False

    print(f"✓ Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")

    # Check for OpenCV
    try:
        import cv2
        print(f"✓ OpenCV {cv2.__version__}")
    except ImportError:
        print("⚠ OpenCV not installed - will install during setup")

    # Check for YOLO (optional)
    try:
        import ultralytics
        print(f"✓ Ultralytics {ultralytics.__version__}")
    except ImportError:
        print("⚠ Ultralytics not installed - object detection disabled (pip install .[detection])")

    return True


def create_directories():
    """Create necessary directories."""
    print("Creating directories...")

    directories = [
        "data",
        "data/configs",
        "data/events",
        "logs",
    ]

    for directory in directories:
        os.makedirs(directory, exist_ok=True)
        print(f"✓ Created directory: {directory}")


def print_usage():
    print("\nTo run the application:")
    print("  python main.py                 # Monitor the local camera")
    print("  python main.py --serve         # HTTP server")
    print("  python main.py --report <id>   # Print an integrity report")
    print("\nTo run tests:")
    print("  python -m unittest discover tests")


class CustomInstall(install):
    """Custom install command."""

    def run(self):
        """Run custom installation."""
        if not check_system_requirements():
            sys.exit(1)

        install.run(self)
        create_directories()

        print("\n" + "="*60)
        print("Installation completed successfully!")
        print("="*60)
        print_usage()


class CustomDevelop(develop):
    """Custom develop command."""

    def run(self):
        """Run custom development installation."""
        if not check_system_requirements():
            sys.exit(1)

        develop.run(self)
        create_directories()

        print("\n" + "="*60)
        print("Development installation completed successfully!")
        print("="*60)


def read_readme():
    """Read README file."""
    try:
        with open(os.path.join(HERE, "README.md"), "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        return "Detection and integrity scoring engine for remote interview proctoring"


setup(
    name="interview-proctor",
    version="1.0.0",
    author="Interview Proctor Team",
    description="Detection and integrity scoring engine for remote interview proctoring",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["interview_proctor", "interview_proctor.*"]),
    py_modules=["main", "web_server"],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Image Processing",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements("requirements.txt"),
    extras_require={
        "dev": [
            "pytest>=7.4.2",
        ],
        "detection": [
            "ultralytics>=8.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "interview-proctor=main:main",
        ],
    },
    cmdclass={
        "install": CustomInstall,
        "develop": CustomDevelop,
    },
    keywords=[
        "proctoring",
        "interview",
        "computer-vision",
        "face-mesh",
        "object-detection",
        "integrity",
        "monitoring",
    ],
)
