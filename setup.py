import os.path

from setuptools import find_packages, setup

with open(os.path.join(os.path.dirname(__file__), 'README.md')) as f:
    LONG_DESCRIPTION = f.read()
    DESCRIPTION = LONG_DESCRIPTION.splitlines()[0].lstrip('#').strip()

setup(
    name='cpa-operator',
    version='0.1.0',

    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type='text/markdown',
    keywords=['kubernetes', 'operator', 'autoscaler', 'python', 'k8s'],
    license='Apache-2.0',
    classifiers = [
        'Intended Audience :: System Administrators',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Programming Language :: Python :: 3 :: Only',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: System :: Clustering',
    ],

    zip_safe=True,
    packages=find_packages(include=['cpa_operator', 'cpa_operator.*']),
    include_package_data=True,
    entry_points={
        'console_scripts': [
            'cpa-operator = cpa_operator.cli:main',
        ],
    },

    python_requires='>=3.10',
    install_requires=[
        'typing_extensions',    # 0.20 MB
        'python-json-logger>=3.1',  # 0.05 MB
        'iso8601',              # 0.07 MB
        'click',                # 0.60 MB
        'aiohttp>=3.9.0',       # 7.80 MB
        'pyyaml',               # 0.90 MB
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio>=0.23',
            'pytest-mock',
        ],
    },
    package_data={"cpa_operator": ["py.typed"]},
)
