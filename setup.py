#!/usr/bin/env python3
########################################################################
# File name: setup.py
# This file is part of: xmppsasl
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this program.  If not, see
# <http://www.gnu.org/licenses/>.
#
########################################################################
import os.path
import runpy

from setuptools import setup, find_packages

here = os.path.abspath(os.path.dirname(__file__))

with open(os.path.join(here, "README.rst"), encoding="utf-8") as f:
    long_description = f.read()

version_mod = runpy.run_path("xmppsasl/_version.py")

install_requires = [
    'aiosasl>=0.4',  # need 0.4+ for SASLState
]

setup(
    name="xmppsasl",
    version=version_mod["__version__"].replace("-", ""),
    description="Pluggable SASL mechanism negotiation for XMPP clients",
    long_description=long_description,
    license="LGPLv3+",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Operating System :: POSIX",
        "License :: OSI Approved :: GNU Lesser General Public License v3 or later (LGPLv3+)",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Communications :: Chat",
        "Topic :: Internet :: XMPP",
    ],
    keywords="asyncio xmpp sasl scram digest-md5",
    python_requires=">=3.7",
    install_requires=install_requires,
    extras_require={
        "test": ["pytest"],
    },
    packages=find_packages(exclude=["tests*"])
)
