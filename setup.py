from setuptools import setup

setup(
    name="iogen",
    version="1.1.0",
    description="Parallel user-space data generator and I/O micro-benchmark",
    packages=["iogen"],
    install_requires=[
        "click",
        "loguru",
        "psutil",
    ],
    extras_require={"test": ["pytest>=6.0"]},
    python_requires=">=3.8",
    scripts=["iogen/iogen_cli"],
)
