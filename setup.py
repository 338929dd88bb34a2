"""Install the gatehouse edge gateway, issuer and ACL services."""

from setuptools import setup, find_packages

setup(
    name='gatehouse',
    version='0.1.0',
    packages=find_packages(exclude=['*tests*']),
    install_requires=[
        "flask",
        "werkzeug",
        "flask-sqlalchemy>=3.0",
        "sqlalchemy>=1.4",
        "redis>=4.1",
        "fakeredis",
        "pyjwt[crypto]",
        "cryptography",
        "pytz",
        "python-dateutil",
        "retry",
        "python-json-logger",
        "requests",
        "click"
    ],
    extras_require={
        'test': ['pytest']
    },
    entry_points={
        'console_scripts': [
            'gatehouse-issuer=gatehouse.issuer.cli:main',
            'gatehouse-acl=gatehouse.acl.cli:main',
            'gatehouse-gateway=gatehouse.gateway.cli:main',
        ]
    },
    zip_safe=False
)
