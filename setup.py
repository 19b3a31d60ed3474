#!/usr/bin/env python3

import os
import sys

from setuptools import setup

if sys.version_info < (3, 6):
    sys.exit("Python 3.6+ is required; you are using %s" % sys.version)

########################################

version_py = os.path.join('vpnc_script_win', 'version.py')

d = {}
with open(version_py, 'r') as fh:
    exec(fh.read(), d)
    version_pep = d['__version__']

########################################

setup(
    name="vpnc-script-win",
    version=version_pep,
    description=("vpnc-script for Windows: VPN interface, route, DNS and WINS configuration"),
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    extras_require={
        "test": ["pytest"],
    },
    install_requires=["setproctitle"],
    license='GPL v3 or later',
    packages=["vpnc_script_win"],
    include_package_data=True,
    entry_points={'console_scripts': ['vpnc-script-win=vpnc_script_win.__main__:main']},
    classifiers={
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Topic :: System :: Networking',
        'Topic :: System :: Systems Administration',
        'Operating System :: Microsoft :: Windows',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
    }
)
