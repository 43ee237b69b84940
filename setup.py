from setuptools import find_packages, setup

setup(
    name="cloud-winmount",
    version="0.1.0",
    description="Expose S3, Dropbox or Google Drive through one POSIX-like filesystem interface",
    author="Daniel T Sasser II",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "cachetools>=5.0.0",
        "boto3>=1.28.0",
        "dropbox>=11.36.0",
        "google-api-python-client>=2.100.0",
    ],
    python_requires=">=3.10",
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "build",
            "twine",
        ],
    },
)
