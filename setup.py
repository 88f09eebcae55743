from setuptools import setup, find_packages

setup(
    name="dfs-raid",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.21.0",
        "flask>=2.0.0",
        "prometheus_client>=0.14.0",
        "python-dotenv>=0.19.0",
        "xmltodict>=0.12.0",
        "requests>=2.26.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "raid-shell=dfsraid.scripts.raid_shell:main",
        ],
    },
    python_requires=">=3.9",
)
