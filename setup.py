from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).parent


def read_requirements(name="requirements.txt"):
    path = HERE / name
    if not path.exists():
        return []
    lines = (line.split("#", 1)[0].strip() for line in path.read_text(encoding="utf-8").splitlines())
    return [line for line in lines if line and not line.startswith("-")]


setup(
    name="paletten-hub",
    version="1.0.0",
    description="MQTT heating controller with SQLite reading history",
    packages=find_packages(exclude=("tests", "tests.*")),
    py_modules=["run_hub"],
    python_requires=">=3.10",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "black>=23.7.0",
            "flake8>=6.0.0",
            "mypy>=1.5.0",
        ],
    },
    classifiers=[
        "Topic :: Home Automation",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX :: Linux",
    ],
    keywords="mqtt heating thermostat shelly sqlite",
    entry_points={"console_scripts": ["paletten-hub=run_hub:main"]},
)
