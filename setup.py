"""
Setup script so `pypeweb` can be installed / recognized as a package.
"""

from setuptools import setup, find_packages

setup(
    name="pypeweb",
    version="1.0.0",
    description="A small Python web framework: routing, middleware, a multi-backend query builder, migrations and views",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "structlog>=23.1",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "jinja2>=3.1",
        "markupsafe>=2.1",
        "typer>=0.9",
        "rich>=13.0",
    ],
    extras_require={
        "postgres": ["psycopg2-binary>=2.9"],
        "mysql": ["mysql-connector-python>=8.0"],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "pype=pypeweb.cli:app",
        ],
    },
)
