"""Install the server-side session store package."""

from setuptools import setup, find_packages

setup(
    name='session-stores',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    install_requires=[
        "flask",
        "pyjwt",
        "cryptography",
        "redis",
        "pymongo",
        "pytz",
        "python-json-logger"
    ],
    extras_require={
        'test': ["pytest"]
    },
    zip_safe=False
)
