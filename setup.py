from setuptools import setup


setup(
    name="datamerge",
    version="0.1.0",
    description="Unify overlapping spreadsheet columns across files and export a consolidated table",
    packages=["datamerge"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "python-dateutil",
        "streamlit",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "datamerge=datamerge.cli:main",
        ]
    },
)
