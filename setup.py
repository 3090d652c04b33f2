from setuptools import find_packages, setup

setup(
    name="dircol",
    version="0.1.0",
    description="Direct collocation transcription of optimal control problems",
    author="dircol Authors",
    packages=find_packages(include=["dircol", "dircol.*"]),
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.10.0",  # Sparse matrices and the trust-constr NLP backend
        "casadi>=3.6.0",  # Automatic differentiation of the transcribed NLP
        "cyipopt>=1.3.0",  # IPOPT driven through the NLP adapter callbacks
        "pandas>=1.5.0",  # Used for trajectory CSV I/O
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Mathematics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="optimal control, trajectory optimization, direct collocation, trapezoidal, hermite-simpson",
)
