from setuptools import setup, find_packages

setup(
    name="database-sync",
    version="0.2.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "loguru",
        "sqlalchemy>=2.0",
        "pymysql",
        "psycopg2-binary",
        "pyodbc",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
