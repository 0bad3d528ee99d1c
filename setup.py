from setuptools import setup, find_packages

setup(
    name="infocausal",
    version="0.3.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "numpy>=1.24.0",
        "pandas>=2.0.0",
        "scipy>=1.10.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    description="Information-theoretic estimators and OCE causal discovery for time series",
    python_requires=">=3.10",
)
