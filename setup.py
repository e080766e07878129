from setuptools import setup, find_packages

setup(
    name="heartbeat_flow",
    version="0.1.0",
    description="Animated ECG waveform with heartbeat-synchronised particle bursts",
    packages=find_packages(exclude=["tests"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "opencv-python>=4.8",
    ],
    extras_require={
        "dev": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "heartbeat-flow=main:main",
        ]
    },
)
