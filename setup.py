from setuptools import setup, find_packages

setup(
    name="formstate",
    version="0.1.0",
    description="Reactive form state and validation triggering for Python UIs",
    author="Formstate Team",
    packages=find_packages(include=["formstate", "formstate.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
