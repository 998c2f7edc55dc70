import os
from setuptools import setup, find_namespace_packages
from setuptools.command.build_py import build_py as _build

CLASSIFIERS = [
    'Operating System :: POSIX',
    'Operating System :: MacOS :: MacOS X',
    'Intended Audience :: Developers',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: System :: Filesystems',
    'Topic :: Internet :: WWW/HTTP'
]

srcdir = os.path.dirname(os.path.abspath(__file__))
pkgdir = os.environ.get('PACKAGE_DIR', os.path.dirname(srcdir))

def get_version():
    out = "dev"
    versfile = os.path.join(pkgdir, 'VERSION')
    if os.path.exists(versfile):
        with open(versfile) as fd:
            parts = fd.readline().split()
        if len(parts) > 0:
            out = parts[-1]
    return out

def write_version_mod(version):
    unistoredir = os.path.join(srcdir, 'unistore')
    for pkg in [f for f in os.listdir(unistoredir) \
                  if not f.startswith('_') and not f.startswith('.')
                     and os.path.isdir(os.path.join(unistoredir, f))]:
        print("setting version for unistore."+pkg)
        versmodf = os.path.join(unistoredir, pkg, "version.py")
        with open(versmodf, 'w') as fd:
            fd.write('"""')
            fd.write("""
An identification of the subsystem version.  Note that this module file gets
(over-) written by the build process.
""")
            fd.write('"""\n\n')
            fd.write('__version__ = "')
            fd.write(version)
            fd.write('"\n')

class build(_build):

    def run(self):
        version = get_version()
        if version != "dev":
            write_version_mod(version)
        _build.run(self)

setup(name='unistore',
      version=get_version(),
      description="unistore: uniform browsing and reading of files in remote and local storage",
      python_requires='>=3.8',
      packages=find_namespace_packages(where=srcdir, include=['unistore', 'unistore.*']),
      scripts=[ ],
      install_requires=[
          'requests',
          'lxml',
          'pyyaml',
          'chardet',
          'boto3',
          'botocore',
          'paramiko',
          'smbprotocol',
      ],
      extras_require={
          'test': [ 'pytest' ],
      },
      cmdclass={'build_py': build},
      classifiers=CLASSIFIERS,
      zip_safe=False
)
