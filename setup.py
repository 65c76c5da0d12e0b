#!/usr/bin/env python

from setuptools import setup

setup(
    name="metastore",
    version="1.0.0",
    description="Key-addressed storage API for token project metadata and images",
    packages=["metastore", "metastore.api", "metastore.projects"],
    include_package_data=True,
    zip_safe=False,
    python_requires=">=3.11",
    keywords=["API", "metadata", "storage"],
    classifiers=[
        "License :: OSI Approved :: MIT License",
        "Framework :: FastAPI",
    ],
    install_requires=[
        "fastapi",
        "python-multipart",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "class-doc",
        "uvicorn",
    ],
    extras_require={
        'dev': [
            'pytest',
            'httpx',
            'mypy',
            'flake8',
            'pre-commit',
        ]
    },
    entry_points={
        'console_scripts': [
            'metastore = metastore.__main__:main'
        ]
    },
)
