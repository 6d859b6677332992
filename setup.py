from setuptools import setup, find_packages

setup(
    name='fwfetch',
    version='0.1.0',
    description='Download, verify and cache Nerves firmware images from GitHub releases',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.10',
    install_requires=[
        'requests',
        'urllib3',
        'platformdirs',
        'PyYAML',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'fwfetch=fwfetch.cli:main',
        ],
    },
)
