import codecs
import os
import os.path
import re

from setuptools import setup


here = os.path.abspath(os.path.dirname(__file__))

# Read the version number from a source file.
def find_version(*file_paths):
    with codecs.open(os.path.join(here, *file_paths), 'r', 'utf8') as f:
        version_file = f.read()

    # The version line must have the form
    # __version__ = 'ver'
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]",
                              version_file, re.M)
    if version_match:
        return version_match.group(1)
    raise RuntimeError("Unable to find version string.")


version = find_version('couchdoc', '__init__.py')
readme = 'README.rst'
long_description = open(readme).read() if os.path.exists(readme) else ''


setup(
    name='couchdoc',
    version=version,
    description="Blocking document CRUD and view queries for CouchDB using "
                "Tornado's httpclient",
    long_description=long_description,
    license="MIT License",
    packages=['couchdoc'],
    python_requires='>=3.8',
    install_requires=['tornado>=6.0'],
    extras_require={'test': ['pytest']},
    classifiers=[
        'Development Status :: 4 - Beta',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3'
    ],
)
