from setuptools import setup, find_packages

setup(
    name="mnist-cnn-sweep",
    version="0.1.0",
    packages=find_packages(include=["mnist_sweep", "mnist_sweep.*"]),
    install_requires=[
        "torch",
        "torchvision",
        "numpy",
        "pillow",
        "tqdm",
        "tensorboard",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "mnist-sweep=mnist_sweep.sweep:main",
            "mnist-sweep-train=mnist_sweep.train:main",
        ],
    },
    python_requires=">=3.8",
)
