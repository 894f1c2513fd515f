from setuptools import setup, find_packages

setup(
    name="atelier",
    version="1.0.0",
    description="Atelier - folder-backed project tracker for motion-design studios",
    author="Your Name",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        # Core data modeling and validation
        "pydantic>=2.0.0",

        # Environment variables
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.11",
    package_dir={"": "."},
)
