from setuptools import setup

setup(
    name='graphcodec',
    version='0',
    packages=['graphcodec'],
    # # Uncomment to enable PEP-561 style type hinting and .pyi type hinting files.
    # package_data={
    #     # Conform to PEP-561
    #     'graphcodec': ['py.typed']
    # },
    python_requires='>=3.10',
    install_requires=['numpy'],
    extras_require={
        'test': ['pytest']
    },
    license='',
    author='graphcodec developers',
    author_email='',
    description='Persistence of object graphs as tagged tree (XML) documents and compact delimited text records.'
)
