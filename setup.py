from setuptools import setup

setup(
    name="gramax",
    version="0.1.0",
    description="Jax kernel matrices and their derivatives.",
    author="GCHQ",
    packages=["gramax", "gramax.kernels"],
    install_requires=[
        "beartype",
        "equinox",
        "jax",
        "jaxtyping",
        "numpy",
        "scipy",
        "typing_extensions",
    ],
    extras_require={
        "dev": [
            "black",
            "isort",
            "pytest",
        ],
    },
)
