#!/usr/bin/env python

import os
import re
from setuptools import setup

version_file = os.path.join('python_mime', '_version.py')
with open(version_file, 'rb') as f:
    version_data = f.read().strip().decode('ascii')

version_re = re.compile(r'((?:\d+)\.(?:\d+)\.(?:\d+))')
version = version_re.search(version_data).group(0)

tests_require = [
    'pytest',
    'pytest-cov',
    'pytest-timeout',
    'PyYAML'
]

setup(name='python-mime',
      version=version,
      description='Build, render and parse MIME messages and multipart forms',
      license='Apache',
      platforms='any',
      zip_safe=False,
      packages=[
          'python_mime',
      ],
      python_requires='>=3.9',
      extras_require={
          'test': tests_require,
          'dev': ['invoke', 'nox'],
          'fuzz': ['atheris'],
      },
      classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: Apache Software License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3 :: Only',
        'Programming Language :: Python :: 3',
        'Topic :: Communications :: Email',
        'Topic :: Software Development :: Libraries :: Python Modules'
      ],
     )
