#!/usr/bin/env python
# -*- coding: utf-8 -*-
# Copyright: (c) 2026, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

import os

from setuptools import setup


def abs_path(rel_path):
    return os.path.join(os.path.dirname(__file__), rel_path)


with open(abs_path('README.md'), mode='rb') as fd:
    long_description = fd.read().decode('utf-8')


setup(
    name='manticore-ntlm',
    version='0.1.0',
    packages=['manticore_ntlm'],
    install_requires=[
        "cryptography>=43.0.0",
        "pyasn1>=0.3.1",
        "requests>=2.0.0"
    ],
    extras_require={
        'test': [
            'pytest',
        ]
    },
    python_requires='>=3.8',
    author='Jordan Borean',
    author_email='jborean93@gmail.com',
    description='Windows credential hashes and the client side of NTLM '
                'wrapped in SPNEGO.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    keywords='authentication auth microsoft ntlm spnego negotiate hash',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
)
