from setuptools import setup, find_packages

setup(
    name='rewrite-proxy',
    version='0.2.0',
    description='URL-Rewriting HTTP Forward Proxy',
    url='https://github.com/terminal-labs/rewrite-proxy',
    author='Terminal Labs',
    author_email='solutions@terminallabs.com',
    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={'rewrite_proxy': ['static/*']},
    include_package_data=True,
    zip_safe=False,
    python_requires='>=3.8',
    install_requires=[
        'beautifulsoup4',
        'click>=8.0',
        'lxml',
        'requests',
        'tornado>=6.0',
        'uritools',
        'urllib3',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    classifiers = [
        "Programming Language :: Python :: 3",
    ],
    entry_points='''
    [console_scripts]
    rewrite-proxy=rewrite_proxy.cli:main
    '''

)
