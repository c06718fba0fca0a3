from setuptools import setup, find_packages

setup(
    name="trackfit_reco",
    version="0.1.0",
    description="Space-time track and vertex reconstruction with likelihood fits for segmented detectors",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(include=["trackfit_reco", "trackfit_reco.*"]),
    python_requires=">=3.10",
    install_requires=[
        # Runtime dependencies
        "numpy",
        "numba",
        "pandas",
        "scipy",
        "iminuit>=2",
        "orjson",
    ],
    extras_require={
        # Developer extras
        "dev": [
            "pytest",
            "black",
            "mypy",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
