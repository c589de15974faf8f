from setuptools import setup, find_packages
from pathlib import Path

# Read requirements.txt for the install_requires field
with open('requirements.txt') as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith('#')]

# Read README.md if it exists
readme_path = Path(__file__).parent / 'README.md'
long_description = readme_path.read_text() if readme_path.exists() else 'Tsukimi Speaker device provisioning and autostart'

setup(
    name='tsukimi_setup',
    version='1.0.0',
    description='Provisions a Raspberry Pi to run the Tsukimi Speaker as an always-on service.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},  # Tells setuptools packages are under src
    packages=find_packages(where='src',),  # Find packages in src
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'tsukimi-setup-and-run=tsukimi_setup.services.tsukimi_setup_and_run:main',
            'tsukimi-install-autostart=tsukimi_setup.services.tsukimi_install_autostart:main',
            'tsukimi-fix-autostart=tsukimi_setup.services.tsukimi_fix_autostart:main',
            'tsukimi-setup-audio-dac=tsukimi_setup.services.tsukimi_audio_dac:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.9'
)
