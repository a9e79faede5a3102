"""
tagwatch - Setup Script
"""
from setuptools import setup, find_packages
import os

# Read long description from README
def read_long_description():
    here = os.path.abspath(os.path.dirname(__file__))
    try:
        with open(os.path.join(here, 'README.md'), encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return "Change-notification clients for MQTT brokers and Beckhoff ADS PLCs"

# Read requirements
def read_requirements():
    here = os.path.abspath(os.path.dirname(__file__))
    with open(os.path.join(here, 'requirements.txt'), encoding='utf-8') as f:
        requirements = []
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                requirements.append(line)
        return requirements

setup(
    name='tagwatch',
    version='1.0.0',
    description='Subscription registry and change-notification clients for MQTT and Beckhoff ADS',
    long_description=read_long_description(),
    long_description_content_type='text/markdown',

    author='tagwatch Contributors',

    license='MIT',

    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Intended Audience :: Manufacturing',
        'Topic :: System :: Networking',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
    ],

    keywords='mqtt ads twincat beckhoff plc subscription industrial automation',

    packages=find_packages(where='src'),
    package_dir={'': 'src'},

    python_requires='>=3.9',

    install_requires=read_requirements(),

    extras_require={
        'dev': [
            'pytest>=7.4.0',
            'pytest-qt>=4.2.0',
            'black>=23.0.0',
            'flake8>=6.0.0',
            'mypy>=1.0.0',
        ],
        'ads': [
            'pyads>=3.4.0'
        ],
    },

    entry_points={
        'console_scripts': [
            'tagwatch-monitor=tagwatch.main:main',
        ],
    },

    include_package_data=True,
)
