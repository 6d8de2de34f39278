from setuptools import setup, find_packages

setup(
    name="csicodec",
    version="0.1",
    description="Decoders for Intel, Atheros and Nexmon Wi-Fi CSI captures",
    author="WiSentinel Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    install_requires=[
        "numpy",
        "scipy",
        "pandas",
        "click",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "csicodec=csicodec.cli:cli",
        ],
    },
    python_requires=">=3.8",
)
