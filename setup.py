import setuptools

# Get requirements from requirements.txt, stripping the version tags
with open('requirements.txt') as f:
    requires = [
        r.split('/')[-1] if r.startswith('git+') else r
        for r in f.read().splitlines()]

with open('README.md') as file:
    readme = file.read()

with open('HISTORY.md') as file:
    history = file.read()

setuptools.setup(name='qnflow',
                 version='0.1.0',
                 description='Q vector corrections for flow analyses',
                 author='qnflow contributors',
                 long_description=readme + '\n\n' + history,
                 long_description_content_type="text/markdown",
                 install_requires=requires,
                 python_requires=">=3.8",
                 extras_require={
                     'test': ['pytest',
                              'hypothesis',
                              'flake8',
                              'pytest-cov'],
                 },
                 packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
                 classifiers=[
                     'Development Status :: 4 - Beta',
                     'License :: OSI Approved :: BSD License',
                     'Natural Language :: English',
                     'Programming Language :: Python :: 3',
                     'Intended Audience :: Science/Research',
                     'Programming Language :: Python :: Implementation :: CPython',
                     'Topic :: Scientific/Engineering :: Physics',
                 ],
                 zip_safe=False)
