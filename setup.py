from setuptools import setup, find_packages

setup(
    name='neohazard',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'pandas',
        'scipy',
    ],
    extras_require={
        'test': [
            'pytest',
            'scikit-learn',
        ],
    },
    description='Frequentist vs Bayesian logistic hazard classification of near-Earth objects.',
    author='Jason Orender',
    author_email='jason@orender.net',
)
