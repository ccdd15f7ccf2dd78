from setuptools import setup


setup(
    name="deposit-doctor",
    version="0.1.0",
    description="Spreadsheet ingestion and deposit totals for payment reconciliation",
    packages=["deposit_doctor"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "deposit-doctor=deposit_doctor.cli:main",
        ]
    },
)
