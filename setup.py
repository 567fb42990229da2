from setuptools import setup, find_packages


setup(name="metricstore",
      version='0.1',
      description='Time-bucketed metric rollups over a sorted key-value store',
      long_description='',
      classifiers=[
          'Development Status :: 4 - Beta',
          'Programming Language :: Python :: 3',
          'Topic :: Database',
          'Topic :: System :: Monitoring',
      ],
      keywords='metrics rollup timeseries',
      install_requires=[
          'sqlalchemy>=1.4',
          'redis>=3.0',
          'pytz',
          'pyzmq',
      ],
      extras_require={
          'test': ['pytest'],
      },
      license='MIT',
      packages=find_packages(),
      entry_points=dict(
          console_scripts=[
              'metricstore-server=metricstore.server:main',
              'metricstore-client=metricstore.client:main',
          ]
      ),
      zip_safe=False)
