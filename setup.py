from setuptools import setup, find_packages

setup(
    name='riskcd',
    version='0.1.0',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.9',
    install_requires=[
        'pandas',
        'numpy',
        'scikit-learn'
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': ['riskcd=riskcd.cli:main'],
    },
    description='Sparse integer risk score models fitted by coordinate descent with restarts and cross-validation.',
    author='Jason Orender',
    author_email='jason@orender.net',
)
