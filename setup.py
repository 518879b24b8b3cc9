import setuptools

with open("README.rst", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="opennotes",
    version="0.1.0",
    author="Jacob Williams",
    author_email="jacobaw@gmail.com",
    description="Markdown notes organized into notebooks that follow you around the filesystem.",
    long_description=long_description,
    long_description_content_type="text/x-rst",
    url="https://github.com/brokensandals/opennotes",
    packages=setuptools.find_packages('src'),
    package_dir={'': 'src'},
    entry_points={
        'console_scripts': [
            'opennotes = opennotes.cli:main'
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    install_requires=[
        'Mako>=1.1.3',
        'pydantic>=2.0',
        'pyyaml>=5.3.1',
        'rich>=10.0.0',
        'terminaltables',
    ],
    extras_require={
        'test': [
            'freezegun',
            'pyfakefs',
            'pytest',
        ],
    },
    python_requires='>=3.9',
)
