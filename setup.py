"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/addon-rebuild/addon-rebuild"
KEYWORDS = "electron native addon node-gyp rebuild prebuild abi cache"
HERE = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    setup(
        name="addon-rebuild",
        version="1.0.0",
        description="Rebuild native addon modules against the installed runtime's ABI",
        keywords=KEYWORDS,
        url=URL,
        package_dir={"": "src"},
        packages=find_packages("src"),
        python_requires=">=3.12",
        install_requires=[
            "requests>=2.28",
            "tqdm>=4.64",
            "psutil>=5.9",
        ],
        extras_require={
            "test": [
                "pytest>=7.0",
            ],
        },
        entry_points={
            "console_scripts": [
                "addon-rebuild=addonbuild.cli:main",
            ],
        },
        include_package_data=True)
