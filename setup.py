from setuptools import setup, find_packages

setup(
    name="field-validation-lib",
    version="0.1.0",
    description="Declarative field validation with a pipe-delimited rule DSL",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        'field_validation': ['local-config.yaml', 'error-messages.yaml'],
    },
    include_package_data=True,
    install_requires=[
        'pyyaml>=6.0',
        'jsonschema>=4.17.0',
        'requests>=2.28.0',
        'bleach>=6.0',
        'python-dateutil>=2.8',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.9',
)
