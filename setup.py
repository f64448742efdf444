from setuptools import setup
from setuptools import find_namespace_packages

with open('requirements.txt') as f:
    required = f.read().splitlines()


exclude = ['docs', 'tests*']
common_kwargs = dict(
    version='0.1',
    license='MIT',
    install_requires=required,
    extras_require={'test': ['pytest']},
    long_description=open('README.rst').read(),
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Scientific/Engineering :: Information Analysis',
    ],
    python_requires='>=3.8',
    include_package_data=True,
)

setup(name='nihexporter',
      packages=find_namespace_packages(where='.', include=['nihexporter*'],
                                       exclude=exclude),
      package_data={'nihexporter.core.config': ['*.config'],
                    'nihexporter.core.data.sample': ['*.csv']},
      **common_kwargs)
