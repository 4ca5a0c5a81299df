from setuptools import setup, find_packages

setup(
    name="lamfbp",
    version="0.1.0",
    description="Filtered back-projection for parallel-beam tomography and laminography with PyTorch",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["lamfbp", "lamfbp.*"]),
    install_requires=[
        "numpy",
        "torch",
        "scipy",
        "psutil",
        "PyYAML",
    ],
    extras_require={
        "test": ["pytest"],
        "examples": ["matplotlib"],
    },
    license="Apache 2.0",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Topic :: Scientific/Engineering :: Medical Science Apps",
    ],
    python_requires=">=3.10",
)
