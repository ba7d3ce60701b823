from setuptools import setup


setup(
    name="cost-ledger",
    version="0.3.0",
    description="Weekly cost-report ingestion: project matching, aggregation and period snapshots",
    packages=["cost_ledger"],
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "all": ["xlrd"],
    },
    entry_points={
        "console_scripts": [
            "cost-ledger=cost_ledger.cli:main",
        ]
    },
)
